from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from typing import Any

from .constants import (
    DEFAULT_QUERY_PORT,
    DEFAULT_SERVER_PORT,
    HOLDING_CHANNEL,
    IDLE_MESSAGE,
    KEEPALIVE_S,
    PROTECT_HOURS,
    PROTECT_PREFIX,
    PROTECT_REPLY,
    QUERY_TIMEOUT_S,
)
from .errors import ConfigError


@dataclass(frozen=True)
class WardenRuntimeConfig:
    config_path: str | None = None
    host: str = ""
    server_port: int = DEFAULT_SERVER_PORT
    query_port: int = DEFAULT_QUERY_PORT
    nickname: str = "ts3warden"
    username: str = ""
    password: str = ""
    idle_minutes: float = 0.0
    holding_channel: str = HOLDING_CHANNEL
    sweep_interval_s: float | None = None
    protect_prefix: str = PROTECT_PREFIX
    protect_hours: float = PROTECT_HOURS
    idle_message: str = IDLE_MESSAGE
    protect_reply: str = PROTECT_REPLY
    release_on_leave: bool = False
    db_path: str = ""
    reconnect_max_attempts: int = -1
    reconnect_delay_s: float = 1.0
    reconnect_backoff: float = 1.0
    reconnect_max_delay_s: float = 0.0
    keepalive_s: float = KEEPALIVE_S
    query_timeout_s: float = QUERY_TIMEOUT_S
    metrics_port: int = 0
    metrics_addr: str = "0.0.0.0"
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None

    @property
    def effective_sweep_interval_s(self) -> float:
        # Unset: one sweep every `idletime` seconds.
        if self.sweep_interval_s is not None and self.sweep_interval_s > 0:
            return float(self.sweep_interval_s)
        return float(self.idle_minutes)


_NUMBER = (int, float)

# (table, key, field, accepted types, required)
_FIELDS: tuple[tuple[str, str, str, tuple[type, ...], bool], ...] = (
    ("general", "host", "host", (str,), True),
    ("general", "serverport", "server_port", (int,), True),
    ("general", "queryport", "query_port", (int,), True),
    ("general", "nickname", "nickname", (str,), True),
    ("general", "username", "username", (str,), True),
    ("general", "password", "password", (str,), True),
    ("general", "keepalive_s", "keepalive_s", _NUMBER, False),
    ("general", "timeout_s", "query_timeout_s", _NUMBER, False),
    ("moderation", "idletime", "idle_minutes", _NUMBER, True),
    ("moderation", "holding_channel", "holding_channel", (str,), False),
    ("moderation", "sweep_interval_s", "sweep_interval_s", _NUMBER, False),
    ("moderation", "protect_prefix", "protect_prefix", (str,), False),
    ("moderation", "protect_hours", "protect_hours", _NUMBER, False),
    ("moderation", "idle_message", "idle_message", (str,), False),
    ("moderation", "protect_reply", "protect_reply", (str,), False),
    ("moderation", "release_on_leave", "release_on_leave", (bool,), False),
    ("db", "path", "db_path", (str,), True),
    ("reconnect", "max_attempts", "reconnect_max_attempts", (int,), False),
    ("reconnect", "delay_s", "reconnect_delay_s", _NUMBER, False),
    ("reconnect", "backoff", "reconnect_backoff", _NUMBER, False),
    ("reconnect", "max_delay_s", "reconnect_max_delay_s", _NUMBER, False),
    ("metrics", "port", "metrics_port", (int,), False),
    ("metrics", "addr", "metrics_addr", (str,), False),
    ("logging", "level", "log_level", (str,), False),
    ("logging", "console", "log_console", (bool,), False),
    ("logging", "file", "log_file", (str,), False),
    ("logging", "format", "log_format", (str,), False),
    ("logging", "datefmt", "log_datefmt", (str,), False),
)


def load_toml(path: str) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    return data if isinstance(data, dict) else {}


def _check_type(name: str, value: Any, types: tuple[type, ...]) -> None:
    # bool is an int subclass; only accept it where bool is asked for.
    if isinstance(value, bool) and bool not in types:
        ok = False
    else:
        ok = isinstance(value, types)
    if not ok:
        expected = " or ".join(t.__name__ for t in types)
        raise ConfigError(f"{name}: expected {expected}, got {type(value).__name__}")


def apply_config_data(base: WardenRuntimeConfig, data: dict[str, Any]) -> WardenRuntimeConfig:
    updates: dict[str, Any] = {}
    for table, key, field_name, types, required in _FIELDS:
        name = f"{table}.{key}"
        section = data.get(table)
        if section is not None and not isinstance(section, dict):
            raise ConfigError(f"[{table}] must be a table")
        if not section or key not in section:
            if required:
                raise ConfigError(f"{name}: missing required key")
            continue
        value = section[key]
        _check_type(name, value, types)
        if float in types and not isinstance(value, bool):
            value = float(value)
        updates[field_name] = value

    for opt in ("log_file", "log_datefmt"):
        if updates.get(opt) == "":
            updates[opt] = None

    cfg = replace(base, **updates) if updates else base
    validate(cfg)
    return cfg


def validate(cfg: WardenRuntimeConfig) -> None:
    if not cfg.host.strip():
        raise ConfigError("general.host: must not be empty")
    for name, port in (
        ("general.serverport", cfg.server_port),
        ("general.queryport", cfg.query_port),
    ):
        if not 0 < port < 65536:
            raise ConfigError(f"{name}: {port} is not a valid port")
    if cfg.idle_minutes <= 0:
        raise ConfigError("moderation.idletime: must be greater than zero")
    if cfg.protect_hours <= 0:
        raise ConfigError("moderation.protect_hours: must be greater than zero")
    if not cfg.protect_prefix:
        raise ConfigError("moderation.protect_prefix: must not be empty")
    if not cfg.holding_channel:
        raise ConfigError("moderation.holding_channel: must not be empty")
    if not cfg.db_path.strip():
        raise ConfigError("db.path: must not be empty")
    if cfg.reconnect_delay_s < 0:
        raise ConfigError("reconnect.delay_s: must not be negative")
    if not 0 <= cfg.metrics_port < 65536:
        raise ConfigError(f"metrics.port: {cfg.metrics_port} is not a valid port")


def load_config(path: str, base: WardenRuntimeConfig | None = None) -> WardenRuntimeConfig:
    cfg = replace(base or WardenRuntimeConfig(), config_path=path)
    return apply_config_data(cfg, load_toml(path))
