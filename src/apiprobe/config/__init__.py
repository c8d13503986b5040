"""
Configuration management for apiprobe.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Project .env file (./.apiprobe.env)
3. Global config file (~/.apiprobe/config.yml)
4. Default values (lowest priority)
"""

from .env_loader import (
    get_global_config_dir,
    load_env_file,
    load_global_config,
    load_project_config,
)
from .getters import (
    get_burst_size,
    get_bypass_threshold,
    get_concurrency,
    get_config,
    get_request_delay,
    get_timeout,
)
from .target import load_target_config, parse_header, target_from_env, target_from_mapping

__all__ = [
    # env_loader
    "get_global_config_dir",
    "load_env_file",
    "load_global_config",
    "load_project_config",
    # getters
    "get_burst_size",
    "get_bypass_threshold",
    "get_concurrency",
    "get_config",
    "get_request_delay",
    "get_timeout",
    # target
    "load_target_config",
    "parse_header",
    "target_from_env",
    "target_from_mapping",
]
