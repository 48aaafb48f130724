from __future__ import annotations

import os
import time


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def now_ms() -> int:
    return int(time.time() * 1000)


def format_duration(ms: int) -> str:
    """Format milliseconds as ``[D:]HH:MM:SS`` with zero-padded fields."""
    total = max(0, int(ms)) // 1000
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    if days:
        return f"{days}:{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def render(template: str, **fields: object) -> str:
    # Unknown placeholders fall back to the raw template.
    try:
        return template.format(**fields)
    except (KeyError, IndexError, ValueError):
        return template
