from __future__ import annotations

import pytest

from ts3warden.errors import QueryError
from ts3warden.models import Channel, ClientSnapshot, SelfIdentity
from ts3warden.protection import ProtectionRegistry

MINUTE_MS = 60 * 1000


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnection:
    """In-memory stand-in for ServerQueryConnection."""

    def __init__(self) -> None:
        self.channels: dict[str, Channel] = {"Lobby": Channel(cid=1, name="Lobby")}
        self.clients: list[ClientSnapshot] = []
        self.identity = SelfIdentity(client_id=99, channel_id=1, nickname="warden")
        self.info: dict[int, dict[str, str]] = {}
        self.is_connected = True
        self.closed = False
        self.events = None

        self.sent: list[tuple[int, str]] = []
        self.moves: list[tuple[int, int]] = []
        self.calls: list[str] = []
        self.reconnect_calls: list[tuple[int, float]] = []
        self.fail_send = False
        self.fail_server_info = False
        self.on_reconnect = None

    def connect(self) -> None:
        self.is_connected = True

    def close(self) -> None:
        self.closed = True
        self.is_connected = False

    def reconnect(self, max_attempts=-1, delay=1.0, *, backoff=1.0, max_delay=None) -> int:
        self.reconnect_calls.append((max_attempts, delay))
        if self.on_reconnect is not None:
            self.on_reconnect()
        self.is_connected = True
        return 1

    def whoami(self) -> SelfIdentity:
        return self.identity

    def get_channel_by_name(self, name: str) -> Channel | None:
        self.calls.append("channellist")
        return self.channels.get(name)

    def client_list(self, client_type: int | None = 0) -> list[ClientSnapshot]:
        self.calls.append("clientlist")
        return [c for c in self.clients if client_type is None or c.client_type == client_type]

    def client_info(self, clid: int) -> dict[str, str]:
        return dict(self.info.get(clid, {}))

    def send_message(self, clid: int, text: str) -> None:
        self.calls.append("sendtextmessage")
        if self.fail_send:
            raise QueryError(512, "invalid clientID")
        self.sent.append((clid, text))

    def move_client(self, clid: int, cid: int) -> None:
        self.calls.append("clientmove")
        self.moves.append((clid, cid))

    def server_info(self) -> dict[str, str]:
        if self.fail_server_info:
            raise QueryError(-1, "not connected")
        return {"virtualserver_clientsonline": str(len(self.clients))}


def make_client(
    clid: int,
    *,
    cid: int = 5,
    idle_ms: int = 0,
    nickname: str | None = None,
    client_type: int = 0,
) -> ClientSnapshot:
    return ClientSnapshot(
        clid=clid,
        cid=cid,
        nickname=nickname or f"user{clid}",
        idle_ms=idle_ms,
        client_type=client_type,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def registry(clock: FakeClock) -> ProtectionRegistry:
    return ProtectionRegistry(clock)
