from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import sys
from dataclasses import replace
from pathlib import Path

import tomlkit

from .config import WardenRuntimeConfig, load_config
from .constants import (
    DEFAULT_QUERY_PORT,
    DEFAULT_SERVER_PORT,
    HOLDING_CHANNEL,
    IDLE_MESSAGE,
    PROTECT_HOURS,
    PROTECT_PREFIX,
    PROTECT_REPLY,
)
from .errors import ConfigError, QueryError
from .logging_config import configure_logging
from .paths import default_config_path, default_db_path, ensure_private_dir
from .service import WardenService


def _default_config_document(db_path: str) -> tomlkit.TOMLDocument:
    doc = tomlkit.document()
    doc.add(tomlkit.comment("ts3warden configuration (TOML)"))
    doc.add(tomlkit.comment("This file was created on first run. Edit it, then start ts3warden again."))
    doc.add(tomlkit.nl())

    general = tomlkit.table()
    general.add(tomlkit.comment("ServerQuery login of the bot (RAW protocol)."))
    general.add("host", "localhost")
    general.add("serverport", DEFAULT_SERVER_PORT)
    general.add("queryport", DEFAULT_QUERY_PORT)
    general.add("nickname", "ts3warden")
    general.add("username", "serveradmin")
    general.add("password", "")
    doc.add("general", general)

    moderation = tomlkit.table()
    moderation.add(tomlkit.comment("Clients idle for longer than this many minutes are moved."))
    moderation.add("idletime", 30)
    moderation.add(tomlkit.comment("Channel idle clients are moved into."))
    moderation.add("holding_channel", HOLDING_CHANNEL)
    moderation.add(tomlkit.comment("Seconds between sweeps. Unset: idletime seconds."))
    moderation.add(tomlkit.comment("sweep_interval_s = 60.0"))
    moderation.add(tomlkit.comment("Chat command that exempts the sender for protect_hours."))
    moderation.add("protect_prefix", PROTECT_PREFIX)
    moderation.add("protect_hours", PROTECT_HOURS)
    moderation.add(tomlkit.comment("Templates; {nickname} and {duration} are substituted."))
    moderation.add("idle_message", IDLE_MESSAGE)
    moderation.add("protect_reply", PROTECT_REPLY)
    moderation.add(tomlkit.comment("Drop a client's protection when it disconnects."))
    moderation.add("release_on_leave", False)
    doc.add("moderation", moderation)

    db = tomlkit.table()
    db.add(tomlkit.comment("SQLite file receiving one clientinfo row per client connect."))
    db.add("path", db_path)
    doc.add("db", db)

    reconnect = tomlkit.table()
    reconnect.add(tomlkit.comment("max_attempts <= 0 retries forever."))
    reconnect.add("max_attempts", -1)
    reconnect.add("delay_s", 1.0)
    reconnect.add(tomlkit.comment("Multiply the delay by backoff after each failure, capped at max_delay_s (0: no cap)."))
    reconnect.add("backoff", 1.0)
    reconnect.add("max_delay_s", 0.0)
    doc.add("reconnect", reconnect)

    metrics = tomlkit.table()
    metrics.add(tomlkit.comment("Prometheus exporter port (0 disables)."))
    metrics.add("port", 0)
    metrics.add("addr", "0.0.0.0")
    doc.add("metrics", metrics)

    log_table = tomlkit.table()
    log_table.add("level", "INFO")
    log_table.add("console", True)
    log_table.add(tomlkit.comment("Optional log file path (leave empty to disable)."))
    log_table.add("file", "")
    log_table.add("format", WardenRuntimeConfig.log_format)
    log_table.add("datefmt", "")
    doc.add("logging", log_table)

    return doc


def _write_default_config(config_path: str, db_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(_default_config_document(db_path)))
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ts3warden", description="Move idle TeamSpeak 3 clients to a holding channel"
    )
    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--holding-channel", default=None, help="Channel idle clients are moved into"
    )
    p.add_argument(
        "--sweep-interval",
        type=float,
        default=None,
        help="Seconds between idle sweeps (default: idletime seconds)",
    )
    p.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Prometheus exporter port (0 disables)",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)
    config_path = str(args.config)

    if not os.path.exists(config_path):
        _write_default_config(config_path, str(default_db_path()))
        print(
            "Created a default ts3warden config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run ts3warden.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        print(f"ts3warden: invalid configuration: {e}", file=sys.stderr)
        raise SystemExit(1) from None

    if args.holding_channel is not None:
        cfg = replace(cfg, holding_channel=str(args.holding_channel))
    if args.sweep_interval is not None:
        cfg = replace(cfg, sweep_interval_s=float(args.sweep_interval))
    if args.metrics_port is not None:
        cfg = replace(cfg, metrics_port=int(args.metrics_port))
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = WardenService(cfg)
    try:
        svc.start()
    except (QueryError, OSError, sqlite3.Error) as e:
        logging.getLogger("ts3warden").error("Startup failed: %s", e)
        svc.stop()
        raise SystemExit(1) from None

    raise SystemExit(svc.run_forever())


if __name__ == "__main__":
    main()
