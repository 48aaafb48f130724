"""Append-only SQLite log of client connections."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from .codec import to_int
from .util import expand_path, now_ms

COLUMNS: tuple[str, ...] = (
    "timestamp",
    "clid",
    "cid",
    "database_id",
    "nickname",
    "is_recording",
    "unique_identifier",
    "version",
    "platform",
    "created",
    "lastconnected",
    "country",
    "ip",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS clientinfo (
    timestamp INTEGER NOT NULL,
    clid INTEGER,
    cid INTEGER,
    database_id INTEGER,
    nickname TEXT,
    is_recording INTEGER,
    unique_identifier TEXT,
    version TEXT,
    platform TEXT,
    created INTEGER,
    lastconnected INTEGER,
    country TEXT,
    ip TEXT
)
"""


def row_from_client(
    data: dict[str, str],
    *,
    clid: int | None = None,
    cid: int | None = None,
    timestamp_ms: int | None = None,
) -> tuple[Any, ...]:
    """Build a clientinfo row from merged enterview/clientinfo fields."""
    return (
        now_ms() if timestamp_ms is None else int(timestamp_ms),
        to_int(data.get("clid")) if clid is None else int(clid),
        to_int(data.get("cid", data.get("ctid"))) if cid is None else int(cid),
        to_int(data.get("client_database_id")),
        data.get("client_nickname", ""),
        bool(to_int(data.get("client_is_recording"))),
        data.get("client_unique_identifier", ""),
        data.get("client_version", ""),
        data.get("client_platform", ""),
        to_int(data.get("client_created")),
        to_int(data.get("client_lastconnected")),
        data.get("client_country") or None,
        data.get("connection_client_ip", ""),
    )


class ConnectionHistory:
    def __init__(self, path: str) -> None:
        self.path = expand_path(path)
        self.log = logging.getLogger("ts3warden.history")
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def open(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=30.0, check_same_thread=False)
        conn.execute(_SCHEMA)
        conn.commit()
        with self._lock:
            self._conn = conn
        self.log.info("Connected to SQLite db: %s", self.path)

    def record(self, row: tuple[Any, ...]) -> bool:
        placeholders = ",".join("?" for _ in COLUMNS)
        with self._lock:
            if self._conn is None:
                return False
            try:
                self._conn.execute(
                    f"INSERT INTO clientinfo ({','.join(COLUMNS)}) VALUES ({placeholders})",
                    row,
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self.log.warning("Failed to record client row: %s", e)
                return False
        return True

    def rows(self) -> list[tuple[Any, ...]]:
        with self._lock:
            if self._conn is None:
                return []
            return list(
                self._conn.execute(
                    f"SELECT {','.join(COLUMNS)} FROM clientinfo ORDER BY rowid"
                )
            )

    def close(self) -> None:
        with self._lock:
            conn = self._conn
            self._conn = None
        if conn is not None:
            conn.close()
