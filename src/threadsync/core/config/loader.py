"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars

Env vars are read from the user .env, the project .env and the OS
environment, in increasing precedence. The .env files only feed THREADSYNC_*
settings and are never exported into os.environ.
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from .models import SyncConfig

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".threadsync.json"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "THREADSYNC_"

# Cache keyed by resolved project directory
_config_cache: dict[Path, SyncConfig] = {}


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/threadsync/config.json (or XDG equivalent)."""
    return get_xdg_config_home() / "threadsync" / "config.json"


def get_user_env_path() -> Path:
    """Path to ~/.config/threadsync/.env (or XDG equivalent)."""
    return get_xdg_config_home() / "threadsync" / ENV_FILE_NAME


def get_project_config_path(project_dir: Path | None = None) -> Path:
    """
    Get path to the project configuration file.

    Args:
        project_dir: Synchronized directory (defaults to current directory)

    Returns:
        Path to .threadsync.json in that directory
    """
    if project_dir is None:
        project_dir = Path.cwd()
    return project_dir / PROJECT_CONFIG_NAME


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`. Nested dicts
    are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 30}})
        {'a': 1, 'b': {'x': 10, 'y': 30}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("Ignoring config at %s: top level is not an object", path)
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def load_env_layers(project_dir: Path | None = None) -> dict[str, str]:
    """
    Collect THREADSYNC_* settings from every env layer.

    Layers, lowest to highest: user .env, project .env, OS environment.
    Keys without the THREADSYNC_ prefix are ignored.

    Args:
        project_dir: Synchronized directory (defaults to current directory)
    """
    if project_dir is None:
        project_dir = Path.cwd()

    values: dict[str, str] = {}
    for path in (get_user_env_path(), project_dir / ENV_FILE_NAME):
        if not path.is_file():
            continue
        for key, value in dotenv_values(path).items():
            if key.startswith(ENV_PREFIX) and value is not None:
                values[key] = value

    values.update({k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)})
    return values


def _env_float(environ: Mapping[str, str], name: str) -> float | None:
    raw = environ.get(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s', ignoring", name, raw)
        return None


def apply_env_overrides(
    config_dict: dict[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Args:
        config_dict: Merged file configuration
        environ: Variables to read (defaults to os.environ)

    Supported env vars:
        THREADSYNC_WAIT_TIME - overrides wait_time_seconds
        THREADSYNC_COMMAND_TIMEOUT - overrides command_timeout_seconds
        THREADSYNC_LOG_CAPACITY - overrides log_capacity
    """
    if environ is None:
        environ = os.environ
    result = config_dict.copy()

    wait_time = _env_float(environ, "THREADSYNC_WAIT_TIME")
    if wait_time is not None:
        if wait_time < 0:
            logger.warning("THREADSYNC_WAIT_TIME must be >= 0, got %s, ignoring", wait_time)
        else:
            result["wait_time_seconds"] = wait_time

    timeout = _env_float(environ, "THREADSYNC_COMMAND_TIMEOUT")
    if timeout is not None:
        if timeout <= 0:
            logger.warning("THREADSYNC_COMMAND_TIMEOUT must be > 0, got %s, ignoring", timeout)
        else:
            result["command_timeout_seconds"] = timeout

    if capacity_str := environ.get("THREADSYNC_LOG_CAPACITY"):
        try:
            capacity = int(capacity_str)
            if capacity < 1:
                logger.warning(
                    "THREADSYNC_LOG_CAPACITY must be >= 1, got %s, ignoring", capacity
                )
            else:
                result["log_capacity"] = capacity
        except ValueError:
            logger.warning("Invalid THREADSYNC_LOG_CAPACITY value '%s', ignoring", capacity_str)

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded defaults; the lowest configuration layer."""
    return {
        "wait_time_seconds": 10.0,
        "command_timeout_seconds": 60.0,
        "log_capacity": 200,
        "poll_interval_seconds": 2.0,
        "identity": {"name": "Threadline", "email": "threadline@localhost"},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> SyncConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (THREADSYNC_*; OS env > project .env > user .env)
        2. Project config (<project_dir>/.threadsync.json)
        3. User config (~/.config/threadsync/config.json)
        4. Hardcoded defaults

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    key = (project_dir or Path.cwd()).resolve()
    if use_cache and key in _config_cache:
        return _config_cache[key]

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(key)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged, load_env_layers(key))

    config = SyncConfig(**merged)
    _config_cache[key] = config
    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    _config_cache.clear()
