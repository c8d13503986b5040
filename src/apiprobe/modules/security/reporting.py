"""Result rendering helpers for the CLI."""

import json
from collections import Counter

from rich.console import Console
from rich.table import Table

from .models import Finding, Severity, TestResult

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
}

MAX_EVIDENCE_CHARS = 120


def all_findings(results: list[TestResult]) -> list[Finding]:
    """Flatten results into findings, most severe first."""
    findings = [finding for result in results for finding in result.vulnerabilities]
    return sorted(findings, key=lambda f: (-f.severity.rank, -f.cvss))


def severity_counts(findings: list[Finding]) -> dict[Severity, int]:
    counts = Counter(finding.severity for finding in findings)
    return {severity: counts.get(severity, 0) for severity in Severity}


def findings_table(findings: list[Finding]) -> Table:
    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", no_wrap=True)
    table.add_column("CVSS", justify="right")
    table.add_column("CWE", no_wrap=True)
    table.add_column("Finding")
    table.add_column("Evidence", overflow="fold")
    for finding in findings:
        evidence = finding.evidence.replace("\n", "; ")
        if len(evidence) > MAX_EVIDENCE_CHARS:
            evidence = evidence[: MAX_EVIDENCE_CHARS - 3] + "..."
        style = SEVERITY_STYLES[finding.severity]
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            f"{finding.cvss:.1f}",
            finding.cwe,
            finding.name,
            evidence,
        )
    return table


def print_results_summary(results: list[TestResult], console: Console) -> None:
    """Print a findings table and a severity summary."""
    findings = all_findings(results)
    for result in results:
        status = "[red]failed[/red]" if result.failed else "[green]ok[/green]"
        console.print(
            f"  {result.test_name}: {status}, {len(result.vulnerabilities)} findings "
            f"({result.duration.total_seconds():.1f}s)"
        )

    if not findings:
        console.print("\n[green][+] No vulnerabilities found.[/green]")
        return

    console.print()
    console.print(findings_table(findings))
    counts = severity_counts(findings)
    summary = " | ".join(
        f"[{SEVERITY_STYLES[severity]}]{severity.value}: {count}[/{SEVERITY_STYLES[severity]}]"
        for severity, count in counts.items()
        if count
    )
    console.print(f"\nTotal: {len(findings)} | {summary}")


def results_to_json(results: list[TestResult]) -> str:
    return json.dumps([result.to_dict() for result in results], indent=2)
