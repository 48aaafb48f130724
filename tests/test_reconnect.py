import pytest

from ts3warden.errors import QueryConnectionError, ReconnectFailed
from ts3warden.events import ConnectionLost, ServerError
from ts3warden.models import SelfIdentity
from ts3warden.reconnect import ConnectionState, ReconnectSupervisor


def _supervisor(conn, **kwargs) -> ReconnectSupervisor:
    sup = ReconnectSupervisor(conn, **kwargs)
    sup.mark_connected(conn.whoami())
    return sup


def test_starts_reconnecting_until_marked(conn) -> None:
    sup = ReconnectSupervisor(conn)

    assert sup.state is ConnectionState.RECONNECTING
    assert not sup.wait_connected(0)
    assert sup.own_client_id() == -1

    sup.mark_connected(conn.whoami())

    assert sup.state is ConnectionState.CONNECTED
    assert sup.wait_connected(0)
    assert sup.own_client_id() == 99


def test_connection_loss_triggers_reconnect(conn) -> None:
    sup = _supervisor(conn, max_attempts=-1, delay_s=1.0)
    conn.is_connected = False

    sup.on_connection_lost(ConnectionLost("closed"))

    assert conn.reconnect_calls == [(-1, 1.0)]
    assert sup.state is ConnectionState.CONNECTED
    assert sup.reconnects == 1


def test_not_connected_while_reconnecting(conn) -> None:
    sup = _supervisor(conn)
    observed: list[tuple[ConnectionState, bool]] = []
    conn.on_reconnect = lambda: observed.append((sup.state, sup.wait_connected(0)))
    conn.is_connected = False

    sup.on_connection_lost(ConnectionLost())

    assert observed == [(ConnectionState.RECONNECTING, False)]
    assert sup.wait_connected(0)


def test_every_loss_converges(conn) -> None:
    sup = _supervisor(conn)

    for _ in range(5):
        conn.is_connected = False
        sup.on_connection_lost(ConnectionLost())
        assert sup.state is ConnectionState.CONNECTED

    assert len(conn.reconnect_calls) == 5


def test_identity_refreshed_after_reconnect(conn) -> None:
    sup = _supervisor(conn)
    conn.identity = SelfIdentity(client_id=123, channel_id=1, nickname="warden")
    conn.is_connected = False

    sup.on_connection_lost(ConnectionLost())

    assert sup.own_client_id() == 123


def test_stale_loss_event_is_ignored(conn) -> None:
    sup = _supervisor(conn)

    sup.on_connection_lost(ConnectionLost("duplicate"))

    assert conn.reconnect_calls == []


def test_drop_right_after_reconnect_retries(conn) -> None:
    sup = _supervisor(conn)
    real_whoami = conn.whoami
    failures = [QueryConnectionError("closed")]

    def whoami():
        if failures:
            raise failures.pop()
        return real_whoami()

    conn.whoami = whoami
    conn.is_connected = False

    sup.on_connection_lost(ConnectionLost())

    assert len(conn.reconnect_calls) == 2
    assert sup.state is ConnectionState.CONNECTED


def test_bounded_reconnect_failure_propagates(conn) -> None:
    sup = _supervisor(conn, max_attempts=3)

    def give_up(max_attempts, delay, *, backoff=1.0, max_delay=None):
        raise ReconnectFailed("gave up")

    conn.reconnect = give_up
    conn.is_connected = False

    with pytest.raises(ReconnectFailed):
        sup.on_connection_lost(ConnectionLost())
    assert sup.state is ConnectionState.RECONNECTING


def test_bounded_budget_covers_whoami_failures(conn) -> None:
    sup = _supervisor(conn, max_attempts=2, delay_s=0.5)

    def whoami():
        raise QueryConnectionError("closed")

    conn.whoami = whoami
    conn.is_connected = False

    with pytest.raises(ReconnectFailed):
        sup.on_connection_lost(ConnectionLost())
    assert conn.reconnect_calls == [(2, 0.5), (1, 0.5)]
    assert sup.state is ConnectionState.RECONNECTING


def test_server_error_is_only_logged(conn, caplog) -> None:
    sup = _supervisor(conn)

    with caplog.at_level("ERROR", logger="ts3warden.reconnect"):
        sup.on_server_error(ServerError("flood ban"))

    assert "flood ban" in caplog.text
    assert conn.reconnect_calls == []
    assert sup.state is ConnectionState.CONNECTED
