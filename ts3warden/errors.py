from __future__ import annotations


class WardenError(Exception):
    pass


class ConfigError(WardenError):
    """Configuration file is missing, malformed, or fails validation."""


class FatalError(WardenError):
    """Runtime condition after which the bot cannot keep enforcing."""


class HoldingChannelNotFound(FatalError):
    def __init__(self, name: str) -> None:
        super().__init__(f"holding channel {name!r} not found")
        self.name = name


class ReconnectFailed(FatalError):
    pass


class QueryError(WardenError):
    """The server answered a query command with a non-zero error id."""

    def __init__(self, error_id: int, message: str) -> None:
        super().__init__(f"error id={error_id}: {message}")
        self.error_id = int(error_id)
        self.message = message


class QueryConnectionError(QueryError):
    """Transport-level failure: not connected, socket closed, timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(-1, message)
