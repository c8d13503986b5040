"""Target configuration loading from YAML files and the environment."""

import json
import os
from pathlib import Path
from typing import Any

import yaml

from apiprobe.errors import TargetConfigError
from apiprobe.modules.security.models import TargetConfig

from .getters import get_timeout


def load_target_config(path: Path) -> TargetConfig:
    """Read a target definition from a YAML file.

    Recognised keys are ``url`` (required), ``headers``, ``endpoints``,
    ``timeout`` and ``verify_ssl``.
    """
    path = Path(path)
    if not path.exists():
        raise TargetConfigError(f"Target config not found: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise TargetConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TargetConfigError(f"Target config must be a mapping: {path}")
    return target_from_mapping(data)


def target_from_mapping(data: dict[str, Any]) -> TargetConfig:
    url = data.get("url")
    if not url:
        raise TargetConfigError("Target config is missing 'url'")

    headers = data.get("headers") or {}
    if not isinstance(headers, dict):
        raise TargetConfigError("'headers' must be a mapping of name to value")
    endpoints = data.get("endpoints") or []
    if not isinstance(endpoints, list):
        raise TargetConfigError("'endpoints' must be a list of URLs")

    try:
        timeout = float(data.get("timeout", get_timeout()))
    except (TypeError, ValueError) as exc:
        raise TargetConfigError(f"Invalid timeout: {data.get('timeout')!r}") from exc

    return TargetConfig(
        url=str(url),
        headers={str(k): str(v) for k, v in headers.items()},
        endpoints=[str(e) for e in endpoints],
        timeout=timeout,
        verify_ssl=bool(data.get("verify_ssl", False)),
    )


def target_from_env() -> TargetConfig | None:
    """Build a target from APIPROBE_TARGET_URL and APIPROBE_HEADERS (a JSON object)."""
    url = os.environ.get("APIPROBE_TARGET_URL")
    if not url:
        return None

    headers: dict[str, str] = {}
    raw_headers = os.environ.get("APIPROBE_HEADERS")
    if raw_headers:
        try:
            parsed = json.loads(raw_headers)
        except ValueError as exc:
            raise TargetConfigError(f"APIPROBE_HEADERS is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise TargetConfigError("APIPROBE_HEADERS must be a JSON object")
        headers = {str(k): str(v) for k, v in parsed.items()}

    return TargetConfig(url=url, headers=headers, timeout=get_timeout())


def parse_header(value: str) -> tuple[str, str]:
    """Split a ``Name: value`` command-line header."""
    name, sep, content = value.partition(":")
    if not sep or not name.strip():
        raise TargetConfigError(f"Header must look like 'Name: value', got {value!r}")
    return name.strip(), content.strip()
