"""Configuration getter functions."""

import logging
import os
from pathlib import Path
from typing import Any

from .env_loader import load_global_config, load_project_config

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_BURST_SIZE = 30
DEFAULT_BYPASS_THRESHOLD = 0.8
DEFAULT_REQUEST_DELAY = 0.1
DEFAULT_TIMEOUT = 30.0


def get_config(key: str, project_dir: Path | None = None, default: Any = None) -> Any:
    """
    Get configuration value with priority:
    1. Environment variable
    2. Project .apiprobe.env file
    3. Global config file
    4. Default value

    Args:
        key: Configuration key
        project_dir: Optional project directory (defaults to the working directory)
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    # 1. Check environment variable
    env_value = os.environ.get(key)
    if env_value:
        return env_value

    # 2. Check project .env file
    project_config = load_project_config(project_dir)
    if key in project_config:
        return project_config[key]

    # 3. Check global config
    global_config = load_global_config()
    if key in global_config:
        return global_config[key]

    # 4. Return default
    return default


def _get_number(key: str, cast, default, project_dir: Path | None, minimum=None):
    raw = get_config(key, project_dir, default=default)
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r; using %s", key, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Ignoring out-of-range %s=%r; using %s", key, raw, default)
        return default
    return value


def get_concurrency(project_dir: Path | None = None) -> int:
    """Get the bypass burst concurrency (default: 5)."""
    return _get_number("APIPROBE_CONCURRENCY", int, DEFAULT_CONCURRENCY, project_dir, minimum=1)


def get_burst_size(project_dir: Path | None = None) -> int:
    """Get the number of probes per bypass burst (default: 30)."""
    return _get_number("APIPROBE_BURST_SIZE", int, DEFAULT_BURST_SIZE, project_dir, minimum=1)


def get_bypass_threshold(project_dir: Path | None = None) -> float:
    """Get the success ratio above which a technique counts as a bypass (default: 0.8)."""
    value = _get_number(
        "APIPROBE_BYPASS_THRESHOLD", float, DEFAULT_BYPASS_THRESHOLD, project_dir, minimum=0.0
    )
    if value > 1.0:
        logger.warning("Ignoring out-of-range APIPROBE_BYPASS_THRESHOLD=%r", value)
        return DEFAULT_BYPASS_THRESHOLD
    return value


def get_request_delay(project_dir: Path | None = None) -> float:
    """Get the pacing delay in seconds between bypass probes (default: 0.1)."""
    return _get_number(
        "APIPROBE_REQUEST_DELAY", float, DEFAULT_REQUEST_DELAY, project_dir, minimum=0.0
    )


def get_timeout(project_dir: Path | None = None) -> float:
    """Get the per-request timeout in seconds (default: 30)."""
    value = _get_number("APIPROBE_TIMEOUT", float, DEFAULT_TIMEOUT, project_dir)
    if value <= 0:
        logger.warning("Ignoring non-positive APIPROBE_TIMEOUT=%r", value)
        return DEFAULT_TIMEOUT
    return value
