"""Configuration loading for FinanzaPro.

Settings come from a TOML file (optional) and are then overridden by
environment variables:

    FINANZAPRO_CONFIG        path to the TOML file
    FINANZAPRO_REMOTE_URL    base URL of the remote REST API
    FINANZAPRO_API_KEY       anonymous API key sent as ``apikey``
    FINANZAPRO_ACCESS_TOKEN  bearer token of the signed-in user
    FINANZAPRO_USER_ID       id of the signed-in user
    FINANZAPRO_DATA_DIR      directory holding the local database
    FINANZAPRO_LOG_LEVEL     logging level name
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "finanzapro" / "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "finanzapro"


@dataclass
class RemoteConfig:
    """Remote backend connection settings."""

    base_url: str = ""
    api_key: str = ""
    access_token: str = ""
    user_id: str = ""
    timeout_seconds: float = 15.0

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)


@dataclass
class SyncConfig:
    """Sync engine tuning."""

    debounce_seconds: float = 1.0
    remote_timeout_seconds: float = 15.0
    # 0 disables dead-lettering (retry forever)
    max_attempts: int = 8
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 300.0
    show_progress: bool = False


@dataclass
class Config:
    """Top-level configuration."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "WARNING"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "finanzapro.db"

    @property
    def mock_db_path(self) -> Path:
        return self.data_dir / "mock_finanzapro.db"

    @property
    def mock_remote_path(self) -> Path:
        return self.data_dir / "mock_remote.json"


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _build_config(data: dict[str, Any]) -> Config:
    remote_data = _section(data, "remote")
    sync_data = _section(data, "sync")
    defaults = SyncConfig()

    remote = RemoteConfig(
        base_url=str(remote_data.get("base_url", "")),
        api_key=str(remote_data.get("api_key", "")),
        access_token=str(remote_data.get("access_token", "")),
        user_id=str(remote_data.get("user_id", "")),
        timeout_seconds=_as_float(
            remote_data.get("timeout_seconds", 15.0), "remote.timeout_seconds"
        ),
    )
    sync = SyncConfig(
        debounce_seconds=_as_float(
            sync_data.get("debounce_seconds", defaults.debounce_seconds), "sync.debounce_seconds"
        ),
        remote_timeout_seconds=_as_float(
            sync_data.get("remote_timeout_seconds", defaults.remote_timeout_seconds),
            "sync.remote_timeout_seconds",
        ),
        max_attempts=_as_int(
            sync_data.get("max_attempts", defaults.max_attempts), "sync.max_attempts"
        ),
        backoff_base_seconds=_as_float(
            sync_data.get("backoff_base_seconds", defaults.backoff_base_seconds),
            "sync.backoff_base_seconds",
        ),
        backoff_max_seconds=_as_float(
            sync_data.get("backoff_max_seconds", defaults.backoff_max_seconds),
            "sync.backoff_max_seconds",
        ),
        show_progress=bool(sync_data.get("show_progress", defaults.show_progress)),
    )
    if sync.debounce_seconds < 0:
        raise ConfigError("sync.debounce_seconds must not be negative")
    if sync.max_attempts < 0:
        raise ConfigError("sync.max_attempts must not be negative")

    data_dir = Path(data.get("data_dir", DEFAULT_DATA_DIR)).expanduser()
    log_level = str(data.get("log_level", "WARNING")).upper()
    return Config(remote=remote, sync=sync, data_dir=data_dir, log_level=log_level)


def _apply_env_overrides(config: Config) -> None:
    env = os.environ
    if env.get("FINANZAPRO_REMOTE_URL"):
        config.remote.base_url = env["FINANZAPRO_REMOTE_URL"]
    if env.get("FINANZAPRO_API_KEY"):
        config.remote.api_key = env["FINANZAPRO_API_KEY"]
    if env.get("FINANZAPRO_ACCESS_TOKEN"):
        config.remote.access_token = env["FINANZAPRO_ACCESS_TOKEN"]
    if env.get("FINANZAPRO_USER_ID"):
        config.remote.user_id = env["FINANZAPRO_USER_ID"]
    if env.get("FINANZAPRO_DATA_DIR"):
        config.data_dir = Path(env["FINANZAPRO_DATA_DIR"]).expanduser()
    if env.get("FINANZAPRO_LOG_LEVEL"):
        config.log_level = env["FINANZAPRO_LOG_LEVEL"].upper()


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from TOML and environment.

    Args:
        path: Explicit TOML path. Falls back to ``$FINANZAPRO_CONFIG`` and then
            the default location; a missing default file is not an error.

    Returns:
        Populated Config.

    Raises:
        ConfigError: If the file is unreadable or holds invalid values.
    """
    explicit = path is not None or bool(os.environ.get("FINANZAPRO_CONFIG"))
    if path is None:
        env_path = os.environ.get("FINANZAPRO_CONFIG")
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    config = _build_config(data)
    _apply_env_overrides(config)
    if config.log_level not in logging.getLevelNamesMapping():
        raise ConfigError(f"Unknown log level: {config.log_level}")
    return config
