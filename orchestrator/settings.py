"""Settings loading & validation.

Precedence (last wins): field defaults → YAML file → ENV (FOUNDRYCTL__*).

The YAML file is ``$FOUNDRYCTL_CONFIG`` when set, else
``~/.foundryctl/config.yaml``; a missing file is not an error.
"""

from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

logger = logging.getLogger(__name__)

CONFIG_ENV = "FOUNDRYCTL_CONFIG"
ENV_PREFIX = "FOUNDRYCTL__"
DEFAULT_CONFIG_PATH = "~/.foundryctl/config.yaml"


class ConfigError(Exception):
    pass


class Settings(BaseModel):
    cli_binary: str = Field(default="foundry", min_length=1, description="External runtime tool")
    command_timeout: float = Field(default=300.0, gt=0, description="Seconds before a CLI call is abandoned")
    http_timeout: float = Field(default=30.0, gt=0)
    download_timeout: float = Field(default=3600.0, gt=0)
    default_ttl: int = Field(default=600, ge=1, description="Seconds a loaded model stays resident")
    runtime_url: str | None = Field(default=None, description="Attach to this service URL instead of asking the CLI")
    service_process_marker: str = "Inference.Service.Agent"
    store_path: str = "~/.foundryctl/models.yaml"
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"

    model_config = ConfigDict(extra="forbid")


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return data


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        field = env_key[prefix_len:].lower()
        # pydantic coerces the string to the field type
        cfg[field] = value
        logger.debug("Settings override from environment: %s", field)


def _resolve_config_path() -> pathlib.Path:
    """Resolve the settings file each call honoring env var changes."""
    return pathlib.Path(os.path.expanduser(os.getenv(CONFIG_ENV, DEFAULT_CONFIG_PATH)))


_lock = threading.Lock()


def load_settings(path: str | pathlib.Path | None = None) -> Settings:
    raw = _load_yaml_if_exists(pathlib.Path(path) if path else _resolve_config_path())
    _apply_env(raw)
    try:
        return Settings.model_validate(raw)
    except SchemaError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    with _lock:
        return load_settings()


def clear_settings_cache() -> None:
    """Clear cached settings (primarily for tests)."""
    get_settings.cache_clear()


__all__ = [
    "ConfigError",
    "Settings",
    "clear_settings_cache",
    "get_settings",
    "load_settings",
]
