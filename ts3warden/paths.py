from __future__ import annotations

import os
from pathlib import Path


def default_warden_dir() -> Path:
    override = os.environ.get("TS3WARDEN_HOME")
    if override:
        return Path(override)
    return Path.home() / ".ts3warden"


def default_config_path() -> Path:
    """Config written on first run; it holds the ServerQuery password."""
    return default_warden_dir() / "ts3warden.toml"


def default_db_path() -> Path:
    """SQLite file for the clientinfo history, next to the config."""
    return default_warden_dir() / "ts3warden.db"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass
