# Configuration Management System
# Centralized configuration for the protocol adapter

"""Configuration resolved from the process environment, an optional .env file
and built-in defaults, in that order."""

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class ConnectionConfig:
    host: str = "127.0.0.1"
    port: int = 4002
    client_id: int = 2011

    def validate(self):
        if not self.host:
            raise ValueError("Host must not be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Port must be within 1-65535, got {self.port}")
        if self.client_id < 0:
            raise ValueError(f"Client id must be non-negative, got {self.client_id}")


@dataclass
class RegistryConfig:
    first_request_id: int = 1
    retired_history: int = 1024

    def validate(self):
        if self.first_request_id < 0:
            raise ValueError("first_request_id must be non-negative")
        if self.retired_history < 0:
            raise ValueError("retired_history must be non-negative")


@dataclass
class DispatchConfig:
    thread_name: str = "ib-dispatch"
    stop_timeout: float = 5.0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s %(message)s"
    # key=value request lines from observability.metrics
    events: bool = True


@dataclass
class AdapterConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _sanitize_host(val: str) -> str:
    """Remove inline comments and whitespace from a host string.

    Examples:
      '172.17.208.1  # comment' -> '172.17.208.1'
      ' localhost ' -> 'localhost'
    """
    h = val.strip()
    if "#" in h:
        h = h.split("#", 1)[0].rstrip()
    return h.split()[0] if h else h


def _parse_env_value(s: str) -> str:
    s = s.lstrip()
    # Quoted: take content up to the matching quote and ignore the rest
    if s.startswith('"') or s.startswith("'"):
        q = s[0]
        end = s.find(q, 1)
        if end != -1:
            return s[1:end]
        return s.strip().strip('"').strip("'")
    # Unquoted: strip inline comments starting with #
    hash_pos = s.find("#")
    if hash_pos != -1:
        s = s[:hash_pos]
    return s.strip()


def _parse_dotenv_lines(lines: list[str]) -> dict[str, str]:
    """Parse key=value lines from a dotenv file, ignoring comments and blanks."""
    env: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, raw_val = line.split("=", 1)
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export ") :].strip()
        if key:
            env[key] = _parse_env_value(raw_val)
    return env


def _load_dotenv(path: str | Path = ".env") -> dict[str, str]:
    p = Path(path)
    if not p.exists():
        return {}
    try:
        return _parse_dotenv_lines(p.read_text(encoding="utf-8").splitlines())
    except OSError as e:
        logging.getLogger(__name__).warning("Failed to read %s: %s", p, e)
        return {}


class ConfigManager:
    _env_defaults: dict[str, str] = {
        "IB_HOST": "127.0.0.1",
        "IB_PORT": "4002",
        "IB_CLIENT_ID": "2011",
        "IB_FIRST_REQUEST_ID": "1",
        "IB_RETIRED_HISTORY": "1024",
        "IB_DISPATCH_THREAD": "ib-dispatch",
        "IB_DISPATCH_STOP_TIMEOUT": "5.0",
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "%(asctime)s %(levelname)s %(name)s %(message)s",
        "LOG_EVENTS": "true",
    }

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        dotenv_path: str | Path | None = ".env",
    ):
        self._environ = os.environ if environ is None else environ
        self._dotenv = _load_dotenv(dotenv_path) if dotenv_path else {}
        self.config = AdapterConfig(
            connection=ConnectionConfig(
                host=_sanitize_host(self.get_env("IB_HOST")),
                port=self.get_env_int("IB_PORT", 4002),
                client_id=self.get_env_int("IB_CLIENT_ID", 2011),
            ),
            registry=RegistryConfig(
                first_request_id=self.get_env_int("IB_FIRST_REQUEST_ID", 1),
                retired_history=self.get_env_int("IB_RETIRED_HISTORY", 1024),
            ),
            dispatch=DispatchConfig(
                thread_name=self.get_env("IB_DISPATCH_THREAD"),
                stop_timeout=self.get_env_float("IB_DISPATCH_STOP_TIMEOUT", 5.0),
            ),
            logging=LoggingConfig(
                level=self.get_env("LOG_LEVEL").upper(),
                format=self.get_env("LOG_FORMAT"),
                events=self.get_env_bool("LOG_EVENTS", True),
            ),
        )
        self.config.connection.validate()
        self.config.registry.validate()

    # -------------- public API -----------------
    def get_env(self, key: str, default: str | None = None) -> str:
        if key in self._environ:
            return self._environ[key]
        if key in self._dotenv:
            return self._dotenv[key]
        if key in self._env_defaults:
            return self._env_defaults[key]
        return default or ""

    def get_env_int(self, key: str, default: int = 0) -> int:
        """Get environment variable as integer."""
        val = self.get_env(key, str(default))
        try:
            return int(val)
        except ValueError:
            return default

    def get_env_float(self, key: str, default: float = 0.0) -> float:
        """Get environment variable as float."""
        val = self.get_env(key, str(default))
        try:
            return float(val)
        except ValueError:
            return default

    def get_env_bool(self, key: str, default: bool = False) -> bool:
        """Get environment variable as boolean."""
        val = self.get_env(key, str(default)).lower()
        return val in ("true", "1", "yes", "on")


_config_manager: ConfigManager | None = None


def get_config() -> AdapterConfig:
    """Return the process-wide configuration (loaded on first use)."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config_manager
    _config_manager = None


def configure_logging(config: LoggingConfig | None = None) -> None:
    cfg = config or get_config().logging
    lvl = getattr(logging, cfg.level.upper(), logging.INFO)
    logging.basicConfig(level=lvl, format=cfg.format)
    events_level = logging.NOTSET if cfg.events else logging.WARNING
    logging.getLogger("ibbridge.observability.metrics").setLevel(events_level)


__all__ = [
    "AdapterConfig",
    "ConnectionConfig",
    "RegistryConfig",
    "DispatchConfig",
    "LoggingConfig",
    "ConfigManager",
    "get_config",
    "reset_config",
    "configure_logging",
]
