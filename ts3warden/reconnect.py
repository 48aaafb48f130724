from __future__ import annotations

import enum
import logging
import threading
from typing import TYPE_CHECKING

from .errors import QueryConnectionError, ReconnectFailed

if TYPE_CHECKING:
    from .events import ConnectionLost, ServerError
    from .models import SelfIdentity
    from .query import ServerQueryConnection


class ConnectionState(enum.Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ReconnectSupervisor:
    """
    Restores the query session after a connection loss.

    on_connection_lost() blocks its caller until the session is back;
    other threads use wait_connected() to hold off while it runs.
    """

    def __init__(
        self,
        connection: ServerQueryConnection,
        *,
        max_attempts: int = -1,
        delay_s: float = 1.0,
        backoff: float = 1.0,
        max_delay_s: float | None = None,
    ) -> None:
        self.connection = connection
        self.max_attempts = int(max_attempts)
        self.delay_s = float(delay_s)
        self.backoff = float(backoff)
        self.max_delay_s = max_delay_s
        self.log = logging.getLogger("ts3warden.reconnect")

        self._lock = threading.Lock()
        self._connected = threading.Event()
        self._state = ConnectionState.RECONNECTING
        self.identity: SelfIdentity | None = None
        self.reconnects = 0

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    def own_client_id(self) -> int:
        ident = self.identity
        return ident.client_id if ident is not None else -1

    def mark_connected(self, identity: SelfIdentity) -> None:
        with self._lock:
            self.identity = identity
            self._state = ConnectionState.CONNECTED
            self._connected.set()

    def wait_connected(self, timeout: float | None = None) -> bool:
        return self._connected.wait(timeout)

    def on_connection_lost(self, event: ConnectionLost) -> None:
        if self.connection.is_connected:
            self.log.debug("Ignoring stale connection-loss event: %s", event.reason)
            return

        with self._lock:
            self._state = ConnectionState.RECONNECTING
            self._connected.clear()

        self.log.warning("Connection lost (%s), trying to reconnect...", event.reason)

        # A session that dies before whoami answers still counts as an attempt.
        used = 0
        while True:
            budget = self.max_attempts - used if self.max_attempts > 0 else self.max_attempts
            used += self.connection.reconnect(
                budget,
                self.delay_s,
                backoff=self.backoff,
                max_delay=self.max_delay_s,
            )
            try:
                identity = self.connection.whoami()
            except QueryConnectionError as e:
                if self.max_attempts > 0 and used >= self.max_attempts:
                    raise ReconnectFailed(
                        f"gave up reconnecting after {used} attempts: {e}"
                    ) from e
                self.log.warning("Connection dropped again right after reconnect: %s", e)
                continue
            break

        self.reconnects += 1
        self.mark_connected(identity)
        self.log.warning(
            "Reconnected after %d attempt(s) as client id %s",
            used,
            identity.client_id,
        )

    def on_server_error(self, event: ServerError) -> None:
        self.log.error("Something went wrong: %s", event.error)

