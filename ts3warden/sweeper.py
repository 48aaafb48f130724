from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .constants import CLIENT_TYPE_VOICE, HOLDING_CHANNEL, IDLE_MESSAGE
from .errors import HoldingChannelNotFound, QueryConnectionError, QueryError
from .stats import IDLE_MOVES, NOTIFY_FAILURES
from .util import format_duration, render

if TYPE_CHECKING:
    from .models import ClientSnapshot
    from .protection import ProtectionRegistry
    from .query import ServerQueryConnection


@dataclass
class SweepResult:
    moved: list[int] = field(default_factory=list)
    protected: list[int] = field(default_factory=list)
    notify_failed: list[int] = field(default_factory=list)
    move_failed: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)


class IdleSweeper:
    """
    Moves clients that have been idle too long into the holding channel.

    One call to run_once() is one cycle: expire protections, resolve the
    holding channel, then walk the client list in server order.
    """

    def __init__(
        self,
        connection: ServerQueryConnection,
        registry: ProtectionRegistry,
        *,
        idle_minutes: float,
        holding_channel: str = HOLDING_CHANNEL,
        idle_message: str = IDLE_MESSAGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.connection = connection
        self.registry = registry
        self.idle_minutes = float(idle_minutes)
        self.holding_channel = holding_channel
        self.idle_message = idle_message
        self._clock = clock
        self.log = logging.getLogger("ts3warden.sweeper")

    @property
    def threshold_ms(self) -> float:
        return self.idle_minutes * 60 * 1000

    def run_once(self) -> SweepResult:
        result = SweepResult()
        now = float(self._clock())

        self.log.debug("Current protection list: %s", self.registry.format())
        result.expired = self.registry.sweep(now)

        self.log.debug("Checking for idle clients")
        lobby = self.connection.get_channel_by_name(self.holding_channel)
        if lobby is None:
            raise HoldingChannelNotFound(self.holding_channel)

        clients = self.connection.client_list(CLIENT_TYPE_VOICE)
        for client in clients:
            if client.cid == lobby.cid or client.idle_ms <= self.threshold_ms:
                continue

            if self.registry.is_protected(client.clid, now):
                self.log.debug(
                    "User with ID '%s' is protected and won't be moved", client.clid
                )
                result.protected.append(client.clid)
                continue

            self.log.info(
                "Client %s has been idle for %s and will be moved to %s",
                client.nickname,
                format_duration(client.idle_ms),
                lobby.name,
            )
            if not self._notify(client):
                result.notify_failed.append(client.clid)

            try:
                self.connection.move_client(client.clid, lobby.cid)
            except QueryConnectionError:
                raise
            except QueryError as e:
                # Client may have left between list and move.
                self.log.warning("Failed to move client %s: %s", client.nickname, e)
                result.move_failed.append(client.clid)
                continue

            IDLE_MOVES.inc()
            result.moved.append(client.clid)

        return result

    def _notify(self, client: ClientSnapshot) -> bool:
        text = render(self.idle_message, nickname=client.nickname)
        self.log.debug("Sending message to user '%s': %s", client.nickname, text)
        try:
            self.connection.send_message(client.clid, text)
        except Exception as e:
            NOTIFY_FAILURES.inc()
            self.log.warning("Error when sending the message: %s", e)
            return False
        return True
