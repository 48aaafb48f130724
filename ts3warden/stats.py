"""Prometheus metrics for the warden."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, start_http_server

from .codec import to_int
from .errors import QueryError

if TYPE_CHECKING:
    from .query import ServerQueryConnection


USERS_ONLINE = Gauge("users_online", "Number of currently connected users")
IDLE_MOVES = Counter(
    "ts3warden_idle_moves",
    "Clients moved to the holding channel for idling",
)
PROTECTIONS_GRANTED = Counter(
    "ts3warden_protections_granted",
    "Protection requests accepted from clients",
)
NOTIFY_FAILURES = Counter(
    "ts3warden_notify_failures",
    "Best-effort chat messages that could not be delivered",
)


class StatsManager:
    """
    Binds the online-users gauge to the live query connection.

    The gauge is evaluated on scrape; when the server cannot be asked, the
    last known value is reported.
    """

    def __init__(self, connection: ServerQueryConnection) -> None:
        self.connection = connection
        self.log = logging.getLogger("ts3warden.stats")
        self._last_online = 0

    def bind(self) -> None:
        USERS_ONLINE.set_function(self.online_count)

    def online_count(self) -> float:
        try:
            info = self.connection.server_info()
        except QueryError as e:
            self.log.debug("serverinfo failed, reporting last value: %s", e)
            return float(self._last_online)
        self._last_online = to_int(info.get("virtualserver_clientsonline"), self._last_online)
        return float(self._last_online)

    def start_exporter(self, port: int, addr: str = "0.0.0.0") -> None:
        if port <= 0:
            return
        start_http_server(int(port), addr=addr)
        self.log.info("Metrics exporter listening on %s:%s", addr, port)
