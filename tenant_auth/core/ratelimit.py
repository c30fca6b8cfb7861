# tenant_auth/core/ratelimit.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from tenant_auth.core.errors import RateLimited

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    limit: float
    rate: float

    def refilled(self, now: float) -> float:
        return min(self.limit, self.tokens + (now - self.updated_at) * self.rate)


class RateLimiter:
    """
    In-process token bucket.
    Keys should include both scope and identity (e.g. "auth:login:ip:1.2.3.4").
    Buckets that have refilled completely are dropped on the periodic sweep.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic,
                 sweep_interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        self._mem: dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._mem)

    def _sweep(self, now: float) -> None:
        full = [k for k, b in self._mem.items() if b.refilled(now) >= b.limit]
        for k in full:
            del self._mem[k]
        self._last_sweep = now

    def allow(self, key: str, *, limit: int, per_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            b = self._mem.get(key)
            if b is None:
                b = _Bucket(tokens=float(limit), updated_at=now, limit=float(limit),
                            rate=float(limit) / float(per_seconds))
                self._mem[key] = b
            b.tokens = b.refilled(now)
            b.updated_at = now
            if b.tokens < 1.0:
                return False
            b.tokens -= 1.0
            return True

    def hit(self, key: str, *, limit: int, per_seconds: int) -> None:
        if not self.allow(key, limit=limit, per_seconds=per_seconds):
            logger.warning("rate limit exceeded for %s", key.rsplit(":", 1)[0])
            raise RateLimited(retry_after=max(1, int(per_seconds / max(limit, 1))))

    def reset(self) -> None:
        with self._lock:
            self._mem.clear()


limiter = RateLimiter()
