"""Time-bounded exemptions from idle enforcement."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable


class ProtectionRegistry:
    """
    Maps ephemeral client ids to an absolute expiry (unix seconds).

    Reads never delete; expired entries are only removed by sweep().
    All access goes through one lock, so the dispatcher and the sweeper
    thread can share an instance.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._expiry: dict[int, float] = {}
        self.log = logging.getLogger("ts3warden.protection")

    def grant(self, clid: int, duration_s: float) -> float:
        expires_at = float(self._clock()) + float(duration_s)
        with self._lock:
            self._expiry[int(clid)] = expires_at
        return expires_at

    def is_protected(self, clid: int, now: float | None = None) -> bool:
        ts = float(self._clock()) if now is None else float(now)
        with self._lock:
            exp = self._expiry.get(int(clid))
        return exp is not None and ts < exp

    def expires_at(self, clid: int) -> float | None:
        with self._lock:
            return self._expiry.get(int(clid))

    def release(self, clid: int) -> bool:
        with self._lock:
            removed = self._expiry.pop(int(clid), None) is not None
        if removed:
            self.log.info("Client with ID '%s' released from protection", clid)
        return removed

    def sweep(self, now: float | None = None) -> list[int]:
        ts = float(self._clock()) if now is None else float(now)
        with self._lock:
            expired = [clid for clid, exp in self._expiry.items() if exp <= ts]
            for clid in expired:
                del self._expiry[clid]
        for clid in expired:
            self.log.info("Client with ID '%s' is no longer protected", clid)
        return expired

    def snapshot(self) -> dict[int, float]:
        with self._lock:
            return dict(self._expiry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiry)

    def format(self) -> str:
        return "[ " + ", ".join(str(k) for k in sorted(self.snapshot())) + " ]"
