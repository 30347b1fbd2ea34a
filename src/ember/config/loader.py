"""Loading and saving ember.yaml."""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ember.config.schema import EmberConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "EMBER_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".ember" / "ember.yaml"


class ConfigError(Exception):
    """ember.yaml cannot be read or does not validate."""


def default_config_path() -> Path:
    """Path named by ``EMBER_CONFIG``, else ``~/.ember/ember.yaml``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


def _normalize_settings(raw: Any, path: Path) -> dict[str, str]:
    """Coerce YAML scalars under ``settings`` to strings.

    YAML reads ``TALENT_LIMIT: 20`` as an int and ``DEBUG: yes`` as a bool;
    plugins always read settings as strings. Null entries are dropped.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'settings' in {path} must be a mapping")

    settings: dict[str, str] = {}
    for key, value in raw.items():
        if value is None:
            continue
        if isinstance(value, dict | list):
            raise ConfigError(f"Setting '{key}' in {path} must be a scalar value")
        if isinstance(value, bool):
            value = "true" if value else "false"
        settings[str(key)] = str(value)
    return settings


def _resolve_storage_path(storage: Any, config_dir: Path) -> Any:
    """Anchor a relative SQLite path at the directory holding the config file.

    ``~`` paths are left for the adapter to expand so that a saved config
    loads back unchanged.
    """
    if not isinstance(storage, dict) or not storage.get("path"):
        return storage

    db_path = str(storage["path"])
    if db_path.startswith("~") or Path(db_path).is_absolute():
        return storage
    return {**storage, "path": str(config_dir / db_path)}


def load_config(path: str | Path | None = None) -> EmberConfig:
    """Load and validate ember.yaml.

    Args:
        path: Config file. Defaults to :func:`default_config_path`.
            A missing or empty file yields the default configuration.

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the file cannot be read, is not YAML, or fails validation
    """
    path = Path(path).expanduser() if path is not None else default_config_path()

    if not path.exists():
        logger.debug("No config at %s, using defaults", path)
        return EmberConfig()

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config from {path}: {e}") from e

    if data is None:
        return EmberConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")

    if "settings" in data:
        data["settings"] = _normalize_settings(data["settings"], path)
    if "storage" in data:
        data["storage"] = _resolve_storage_path(data["storage"], path.parent)

    try:
        config = EmberConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    logger.info("Loaded config from %s", path)
    return config


def save_config(config: EmberConfig, path: str | Path | None = None) -> Path:
    """Write a configuration as YAML.

    Args:
        config: Configuration to save
        path: Destination. Defaults to :func:`default_config_path`.

    Returns:
        The path written
    """
    path = Path(path).expanduser() if path is not None else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.safe_dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)

    logger.debug("Saved config to %s", path)
    return path
