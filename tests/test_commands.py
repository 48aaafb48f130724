import pytest

from ts3warden.commands import CommandHandler
from ts3warden.constants import TARGETMODE_CHANNEL, TARGETMODE_CLIENT, TARGETMODE_SERVER
from ts3warden.events import TextMessage

BOT_ID = 99


def _handler(conn, registry, **kwargs) -> CommandHandler:
    return CommandHandler(conn, registry, lambda: BOT_ID, **kwargs)


def _msg(text: str, *, invoker: int = 7, targetmode: int = TARGETMODE_CLIENT) -> TextMessage:
    return TextMessage(
        targetmode=targetmode, msg=text, invoker_id=invoker, invoker_name=f"user{invoker}"
    )


def test_stop_grants_three_hours(conn, registry, clock) -> None:
    handler = _handler(conn, registry)

    assert handler.handle(_msg("!stop"))

    assert registry.expires_at(7) == clock.now + 3 * 3600
    assert conn.sent == [(7, "Na gut, ich move dich die nächsten drei Stunden nicht mehr :(")]


def test_prefix_match_allows_trailing_text(conn, registry) -> None:
    handler = _handler(conn, registry)

    assert handler.handle(_msg("!stop please, I'm cooking"))
    assert registry.is_protected(7)


def test_own_direct_message_is_ignored(conn, registry) -> None:
    handler = _handler(conn, registry)

    assert not handler.handle(_msg("!stop", invoker=BOT_ID, targetmode=TARGETMODE_CLIENT))
    assert not registry.is_protected(BOT_ID)
    assert conn.sent == []


@pytest.mark.parametrize(
    "invoker,targetmode",
    [
        (7, TARGETMODE_CLIENT),
        (7, TARGETMODE_CHANNEL),
        (BOT_ID, TARGETMODE_CHANNEL),
        (BOT_ID, TARGETMODE_SERVER),
    ],
)
def test_other_senders_and_modes_are_processed(conn, registry, invoker, targetmode) -> None:
    handler = _handler(conn, registry)

    assert handler.handle(_msg("!stop", invoker=invoker, targetmode=targetmode))
    assert registry.is_protected(invoker)


def test_unrecognized_text_does_nothing(conn, registry) -> None:
    handler = _handler(conn, registry)

    assert not handler.handle(_msg("hello there"))
    assert not handler.handle(_msg(" !stop"))
    assert len(registry) == 0
    assert conn.sent == []


def test_reply_failure_keeps_protection(conn, registry) -> None:
    conn.fail_send = True
    handler = _handler(conn, registry)

    assert handler.handle(_msg("!stop"))
    assert registry.is_protected(7)


def test_configured_prefix_and_duration(conn, registry, clock) -> None:
    handler = _handler(
        conn, registry, protect_prefix="!afk", protect_hours=1, protect_reply="ok {nickname} ({duration})"
    )

    assert not handler.handle(_msg("!stop"))
    assert handler.handle(_msg("!afk"))

    assert registry.expires_at(7) == clock.now + 3600
    assert conn.sent == [(7, "ok user7 (01:00:00)")]


def test_register_additional_command(conn, registry) -> None:
    handler = _handler(conn, registry)
    seen: list[int] = []
    handler.register("!ping", lambda event: seen.append(event.invoker_id))

    assert handler.handle(_msg("!ping", invoker=3))
    assert seen == [3]
    assert handler.prefixes == ("!stop", "!ping")


def test_register_rejects_empty_prefix(conn, registry) -> None:
    handler = _handler(conn, registry)

    with pytest.raises(ValueError):
        handler.register("", lambda event: None)
