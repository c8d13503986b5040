"""apiprobe CLI - API security testing tool."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from apiprobe.config import (
    get_burst_size,
    get_bypass_threshold,
    get_concurrency,
    get_request_delay,
    load_target_config,
    parse_header,
    target_from_env,
)
from apiprobe.errors import RegistryRunError, TargetConfigError
from apiprobe.modules.security import (
    SecurityTestRegistry,
    TargetConfig,
    TestResult,
    VulnerabilityType,
    create_default_testers,
)
from apiprobe.modules.security.reporting import print_results_summary, results_to_json
from apiprobe.modules.security.testers import RateLimitBypassTester
from apiprobe.tools.http import merge_headers

app = typer.Typer(
    name="apiprobe",
    help="API security testing tool",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


def normalize_verbose(verbose: bool) -> bool:
    """Resolve effective verbose flag from CLI arg and env var."""
    if verbose:
        return True
    return os.environ.get("APIPROBE_VERBOSE", "").lower() in {"1", "true", "yes", "on"}


def build_registry() -> SecurityTestRegistry:
    """Default catalog, with the bypass tester tuned from configuration."""
    registry = SecurityTestRegistry(create_default_testers())
    registry.register(
        RateLimitBypassTester(
            requests_per_test=get_burst_size(),
            concurrency=get_concurrency(),
            delay=get_request_delay(),
            threshold=get_bypass_threshold(),
        )
    )
    return registry


def resolve_target(
    url: str | None,
    headers: list[str],
    endpoints: list[str],
    config_file: Path | None,
) -> TargetConfig:
    """Merge --config, the environment and command-line options into one target."""
    if config_file is not None:
        target = load_target_config(config_file)
    else:
        target = target_from_env() if url is None else TargetConfig(url=url)
    if target is None:
        raise TargetConfigError(
            "No target given. Pass a URL, --config or set APIPROBE_TARGET_URL."
        )

    if url is not None:
        target.url = url
    for raw in headers:
        name, value = parse_header(raw)
        target.headers = merge_headers(target.headers, {name: value})
    target.endpoints.extend(endpoints)
    return target.validate()


def parse_types(raw: list[str]) -> list[VulnerabilityType]:
    return [VulnerabilityType.parse(value) for value in raw]


@app.command()
def scan(
    url: Optional[str] = typer.Argument(None, help="Base URL of the API under test"),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Extra request header 'Name: value' (repeatable)"
    ),
    endpoint: list[str] = typer.Option(
        [], "--endpoint", "-e", help="Endpoint URL to probe (repeatable)"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="YAML target definition (url, headers, endpoints, ...)"
    ),
    test: list[str] = typer.Option(
        [], "--test", "-t", help="Vulnerability type to run, e.g. injection or API4 (repeatable)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose log output"),
) -> None:
    """Run the security testers against an API."""
    setup_logging(normalize_verbose(verbose))

    registry = build_registry()
    try:
        target = resolve_target(url, header, endpoint, config_file)
        types = parse_types(test)
        registry.select(types)
    except (TargetConfigError, ValueError) as exc:
        err_console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(2)

    out = err_console if as_json else console
    out.print(f"[blue]Testing {target.url} ({len(target.all_endpoints())} endpoint(s))...[/blue]")

    exit_code = 0
    try:
        results = asyncio.run(
            registry.run_all(
                target,
                types=types or None,
                progress=lambda msg: out.print(f"[dim]{msg}[/dim]"),
            )
        )
    except RegistryRunError as exc:
        err_console.print(f"[red]! {exc}[/red]")
        results = list(exc.results)
        if exc.failed_result is not None:
            results.append(exc.failed_result)
        exit_code = 1

    render_results(results, as_json)
    if exit_code:
        raise typer.Exit(exit_code)


def render_results(results: list[TestResult], as_json: bool) -> None:
    if as_json:
        typer.echo(results_to_json(results))
    else:
        print_results_summary(results, console)


@app.command("list")
def list_testers() -> None:
    """List the registered security testers."""
    table = Table(title="Security testers")
    table.add_column("Type", no_wrap=True)
    table.add_column("Name")
    table.add_column("Description")
    for tester in build_registry().get_all():
        table.add_row(tester.get_type().label, tester.get_name(), tester.get_description())
    console.print(table)


@app.command()
def version() -> None:
    """Show the installed apiprobe version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        current_version = pkg_version("apiprobe")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"apiprobe {current_version}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
