from __future__ import annotations

from dataclasses import dataclass

from .codec import to_int
from .constants import CLIENT_TYPE_VOICE


@dataclass(frozen=True)
class SelfIdentity:
    client_id: int
    channel_id: int
    nickname: str
    database_id: int = 0


@dataclass(frozen=True)
class Channel:
    cid: int
    name: str


@dataclass(frozen=True)
class ClientSnapshot:
    """Read-only view of a connected client, fetched fresh on every sweep."""

    clid: int
    cid: int
    nickname: str
    idle_ms: int = 0
    client_type: int = CLIENT_TYPE_VOICE

    @classmethod
    def from_entry(cls, entry: dict[str, str]) -> ClientSnapshot:
        return cls(
            clid=to_int(entry.get("clid")),
            cid=to_int(entry.get("cid", entry.get("ctid"))),
            nickname=entry.get("client_nickname", ""),
            idle_ms=to_int(entry.get("client_idle_time")),
            client_type=to_int(entry.get("client_type"), CLIENT_TYPE_VOICE),
        )
