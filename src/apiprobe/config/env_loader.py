"""Environment variable and configuration file loading."""

from pathlib import Path
from typing import Any

import yaml

PROJECT_ENV_FILE = ".apiprobe.env"


def get_global_config_dir() -> Path:
    """Return the global ~/.apiprobe config directory."""
    return Path.home() / ".apiprobe"


def load_env_file(env_path: Path) -> dict[str, str]:
    """Load KEY=VALUE pairs from a dotenv-style file."""
    env_vars = {}
    if env_path.exists():
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    # Remove quotes if present
                    value = value.strip().strip("\"'")
                    env_vars[key.strip()] = value
    return env_vars


def load_global_config() -> dict[str, Any]:
    """Load global configuration from ~/.apiprobe/config.yml."""
    config_path = get_global_config_dir() / "config.yml"
    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


def load_project_config(project_dir: Path | None = None) -> dict[str, str]:
    """Load project-specific configuration from ./.apiprobe.env."""
    if project_dir is None:
        project_dir = Path.cwd()
    return load_env_file(project_dir / PROJECT_ENV_FILE)
