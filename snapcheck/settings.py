"""Manager settings loader.

Loads defaults from ``config/defaults.toml`` and applies overrides with
this priority:
  1. Environment variables (highest, already set in shell)
  2. .env in the current directory (only for variables not already set)
  3. The TOML file
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from snapcheck.schemas.settings import ManagerSettings

logger = logging.getLogger(__name__)

# Default config directory relative to the snapcheck package
_CONFIG_DIR = Path(__file__).parent / "config"

# (TOML section, TOML key) -> (settings field, environment variable)
_FIELDS: dict[tuple[str, str], tuple[str, str]] = {
    ("manager", "env"): ("env", "SNAPCHECK_ENV"),
    ("manager", "host"): ("host", "SNAPCHECK_HOST"),
    ("manager", "port"): ("port", "PORT"),
    ("manager", "database_path"): ("database_path", "SNAPCHECK_DATABASE_PATH"),
    ("manager", "log_level"): ("log_level", "SNAPCHECK_LOG_LEVEL"),
    ("worker", "run_path"): ("worker_run_path", "SNAPCHECK_WORKER_RUN_PATH"),
    ("worker", "timeout"): ("worker_timeout", "SNAPCHECK_WORKER_TIMEOUT"),
    ("webhooks", "timeout"): ("webhook_timeout", "SNAPCHECK_WEBHOOK_TIMEOUT"),
    ("scheduler", "enabled"): ("scheduler_enabled", "SNAPCHECK_SCHEDULER_ENABLED"),
    ("scheduler", "interval"): ("scheduler_interval", "SNAPCHECK_SCHEDULER_INTERVAL"),
}


def load_env_file(path: Path | None = None) -> None:
    """Load a simple KEY=VALUE .env file without overwriting set variables."""
    path = path or Path.cwd() / ".env"
    if not path.is_file():
        return
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def load_settings(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> ManagerSettings:
    """Load manager settings from a TOML file plus environment overrides.

    Args:
        config_path: Path to the TOML file. Defaults to snapcheck/config/defaults.toml.
        environ: Environment mapping to read overrides from. Defaults to
            ``os.environ``.

    Returns:
        Validated ManagerSettings.

    Raises:
        FileNotFoundError: If the config file does not exist.
        pydantic.ValidationError: If a value is invalid.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Manager config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for (section, key), (field, env_var) in _FIELDS.items():
        section_data = raw.get(section, {})
        if isinstance(section_data, dict) and key in section_data:
            values[field] = section_data[key]
        override = env.get(env_var)
        if override:
            values[field] = override

    return ManagerSettings(**values)
