"""Line codec for the TeamSpeak 3 ServerQuery text protocol."""

from __future__ import annotations

from typing import Any

_ESCAPES: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ("/", "\\/"),
    (" ", "\\s"),
    ("|", "\\p"),
    ("\a", "\\a"),
    ("\b", "\\b"),
    ("\f", "\\f"),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
    ("\v", "\\v"),
)

_UNESCAPES: dict[str, str] = {esc: raw for raw, esc in _ESCAPES}


def escape(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    s = str(value)
    for raw, esc in _ESCAPES:
        s = s.replace(raw, esc)
    return s


def unescape(value: str) -> str:
    out: list[str] = []
    i = 0
    n = len(value)
    while i < n:
        ch = value[i]
        if ch == "\\" and i + 1 < n:
            seq = value[i : i + 2]
            repl = _UNESCAPES.get(seq)
            if repl is not None:
                out.append(repl)
                i += 2
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def encode_command(
    name: str,
    params: dict[str, Any] | None = None,
    options: tuple[str, ...] | list[str] = (),
) -> str:
    parts = [name]
    for key, value in (params or {}).items():
        if value is None:
            continue
        parts.append(f"{key}={escape(value)}")
    for opt in options:
        parts.append(opt if opt.startswith("-") else f"-{opt}")
    return " ".join(parts)


def parse_kv(line: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for token in line.strip().split(" "):
        if not token:
            continue
        key, sep, value = token.partition("=")
        data[key] = unescape(value) if sep else ""
    return data


def parse_multi_kv(line: str) -> list[dict[str, str]]:
    return [parse_kv(chunk) for chunk in line.split("|") if chunk.strip()]


def parse_error_line(line: str) -> tuple[int, str]:
    """Return (error_id, msg) from an ``error id=.. msg=..`` status line."""
    data = parse_kv(line[len("error"):] if line.startswith("error") else line)
    try:
        error_id = int(data.get("id", "-1"))
    except ValueError:
        error_id = -1
    return error_id, data.get("msg", "")


def to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
