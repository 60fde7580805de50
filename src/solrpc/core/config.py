"""Configuration management for solrpc."""

from __future__ import annotations

import os
import threading
import tomllib
from copy import deepcopy
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, ValidationError

DEFAULT_CONFIG_DIR = Path(os.environ.get("SOLRPC_HOME", Path.home() / ".solrpc"))
CONFIG_FILENAME = "config.toml"

ENV_OVERRIDES = {
    "SOLRPC_CLUSTER": "cluster",
    "SOLRPC_WS_CLUSTER": "ws_cluster",
    "SOLRPC_ENCODING": "encoding",
    "SOLRPC_JSON_RPC_VERSION": "json_rpc_version",
}


class ConfigurationError(RuntimeError):
    """Raised when configuration is missing or cannot be loaded."""


class SolRPCConfig(BaseModel):
    """Settings shared by the HTTP and websocket clients."""

    json_rpc_version: str = "2.0"
    cluster: str | None = "https://api.mainnet-beta.solana.com"
    ws_cluster: str | None = "wss://api.mainnet-beta.solana.com"
    encoding: str = "base58"
    request_timeout: float = 10.0
    # Passed through untouched to the websocket connection factory.
    client_options: dict[str, Any] = {}


_config_lock = threading.Lock()
_global_config: SolRPCConfig | None = None


def configure(config: SolRPCConfig | None = None, **overrides: Any) -> SolRPCConfig:
    """Install the process-wide default configuration.

    Pass a full ``SolRPCConfig`` or keyword overrides applied on top of the
    current defaults. Returns the installed configuration.
    """

    global _global_config
    with _config_lock:
        base = config or _global_config or SolRPCConfig()
        if overrides:
            try:
                base = SolRPCConfig(**{**base.model_dump(), **overrides})
            except ValidationError as exc:
                raise ConfigurationError(str(exc)) from exc
        _global_config = base
        return base


def get_config() -> SolRPCConfig:
    """Return the process-wide configuration, creating defaults on first use."""

    global _global_config
    with _config_lock:
        if _global_config is None:
            _global_config = SolRPCConfig()
        return _global_config


def reset_config() -> None:
    global _global_config
    with _config_lock:
        _global_config = None


def resolve_setting(name: str, explicit: Any, config: SolRPCConfig | None = None) -> Any:
    """Instance-level value wins; otherwise fall back to ``config`` then the global default."""

    if explicit is not None:
        return explicit
    source = config or get_config()
    return getattr(source, name)


class ConfigManager:
    """Loads and persists ``config.toml`` with environment overrides."""

    def __init__(
        self,
        config_dir: Path | None = None,
        *,
        override_config_path: Path | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        self.config_dir = config_dir or DEFAULT_CONFIG_DIR
        self.config_path = self.config_dir / CONFIG_FILENAME
        self.override_config_path = override_config_path
        self._environ = environ if environ is not None else os.environ

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> SolRPCConfig:
        """Return the merged configuration: file, override file, then environment."""

        data = self._read_config_dict(self.config_path)
        if self.override_config_path:
            data = self._merge_dicts(data, self._read_config_dict(self.override_config_path))
        for env_name, field in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value:
                data[field] = value
        try:
            return SolRPCConfig(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    def save(self, config: SolRPCConfig) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(tomli_w.dumps(config.model_dump(exclude_none=True)))

    def update(self, **updates: object) -> SolRPCConfig:
        """Persist ``updates`` to the base config file and return the new config."""

        current = self._read_config_dict(self.config_path)
        unknown = sorted(set(updates) - set(SolRPCConfig.model_fields))
        if unknown:
            raise ConfigurationError(f"Unknown configuration key(s): {', '.join(unknown)}")
        current.update(updates)
        try:
            config = SolRPCConfig(**current)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc
        self.save(config)
        return config

    def install(self) -> SolRPCConfig:
        """Load the configuration and make it the process-wide default."""

        return configure(self.load())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read_config_dict(self, path: Path | None) -> dict[str, Any]:
        if path is None:
            return {}
        if not path.exists():
            return {}
        try:
            return tomllib.loads(path.read_text())
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigurationError(f"Failed to load config from {path}: {exc}") from exc

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = deepcopy(base)
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result


__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG_DIR",
    "ConfigManager",
    "ConfigurationError",
    "SolRPCConfig",
    "configure",
    "get_config",
    "reset_config",
    "resolve_setting",
]
