"""Chat command handling for the warden bot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from .constants import PROTECT_HOURS, PROTECT_PREFIX, PROTECT_REPLY, TARGETMODE_CLIENT
from .stats import NOTIFY_FAILURES, PROTECTIONS_GRANTED
from .util import format_duration, render

if TYPE_CHECKING:
    from .events import TextMessage
    from .protection import ProtectionRegistry
    from .query import ServerQueryConnection

CommandAction = Callable[["TextMessage"], None]


class CommandHandler:
    """
    Maps message prefixes to actions.

    Commands are matched in registration order against the start of the
    message text; the first match wins.
    """

    def __init__(
        self,
        connection: ServerQueryConnection,
        registry: ProtectionRegistry,
        own_client_id: Callable[[], int],
        *,
        protect_prefix: str = PROTECT_PREFIX,
        protect_hours: float = PROTECT_HOURS,
        protect_reply: str = PROTECT_REPLY,
    ) -> None:
        self.connection = connection
        self.registry = registry
        self.own_client_id = own_client_id
        self.protect_hours = float(protect_hours)
        self.protect_reply = protect_reply
        self.log = logging.getLogger("ts3warden.commands")

        self._commands: dict[str, CommandAction] = {}
        self.register(protect_prefix, self._cmd_protect)

    def register(self, prefix: str, action: CommandAction) -> None:
        if not prefix:
            raise ValueError("command prefix must not be empty")
        self._commands[prefix] = action

    @property
    def prefixes(self) -> tuple[str, ...]:
        return tuple(self._commands)

    def accepts(self, event: TextMessage) -> bool:
        # Our own direct messages echo back through textprivate.
        return not (
            event.targetmode == TARGETMODE_CLIENT
            and event.invoker_id == self.own_client_id()
        )

    def handle(self, event: TextMessage) -> bool:
        """Returns True if the message matched a command and was acted on."""
        if not self.accepts(event):
            return False

        self.log.debug("I saw a message from %r: %s", event.invoker_name, event.msg)

        for prefix, action in self._commands.items():
            if event.msg.startswith(prefix):
                action(event)
                return True
        return False

    def _cmd_protect(self, event: TextMessage) -> None:
        self.log.info(
            "Got protection request from user '%s' with ID '%s'",
            event.invoker_name,
            event.invoker_id,
        )
        duration_s = self.protect_hours * 3600
        self.registry.grant(event.invoker_id, duration_s)
        PROTECTIONS_GRANTED.inc()
        self.log.info("New protection list: %s", self.registry.format())

        text = render(
            self.protect_reply,
            nickname=event.invoker_name,
            duration=format_duration(int(duration_s * 1000)),
        )
        try:
            self.connection.send_message(event.invoker_id, text)
        except Exception as e:
            NOTIFY_FAILURES.inc()
            self.log.warning("Error when sending the message: %s", e)
