"""Typed events emitted by the query connection and consumed by the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .codec import to_int
from .constants import N_CLIENT_ENTER, N_CLIENT_LEFT, N_TEXT_MESSAGE


@dataclass(frozen=True)
class ConnectionLost:
    reason: str = ""


@dataclass(frozen=True)
class TextMessage:
    targetmode: int
    msg: str
    invoker_id: int
    invoker_name: str
    invoker_uid: str = ""


@dataclass(frozen=True)
class ClientConnect:
    clid: int
    cid: int
    nickname: str
    data: dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ClientLeave:
    clid: int
    reason: str = ""


@dataclass(frozen=True)
class ServerError:
    error: BaseException | str


Event = Union[ConnectionLost, TextMessage, ClientConnect, ClientLeave, ServerError]


def event_from_notification(name: str, data: dict[str, str]) -> Event | None:
    """Map a parsed ``notify*`` line to an event; unknown notifications give None."""
    if name == N_TEXT_MESSAGE:
        return TextMessage(
            targetmode=to_int(data.get("targetmode")),
            msg=data.get("msg", ""),
            invoker_id=to_int(data.get("invokerid")),
            invoker_name=data.get("invokername", ""),
            invoker_uid=data.get("invokeruid", ""),
        )
    if name == N_CLIENT_ENTER:
        return ClientConnect(
            clid=to_int(data.get("clid")),
            cid=to_int(data.get("ctid")),
            nickname=data.get("client_nickname", ""),
            data=dict(data),
        )
    if name == N_CLIENT_LEFT:
        return ClientLeave(clid=to_int(data.get("clid")), reason=data.get("reasonmsg", ""))
    return None
