from __future__ import annotations

import pytest

from tenant_auth.core.errors import RateLimited
from tenant_auth.core.ratelimit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_bucket_empties_and_refills():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    for _ in range(3):
        limiter.hit("auth:login:ip:1.2.3.4", limit=3, per_seconds=60)
    with pytest.raises(RateLimited) as exc:
        limiter.hit("auth:login:ip:1.2.3.4", limit=3, per_seconds=60)
    assert exc.value.headers["Retry-After"] == "20"

    clock.now += 21
    limiter.hit("auth:login:ip:1.2.3.4", limit=3, per_seconds=60)


def test_refilled_buckets_are_swept():
    clock = FakeClock()
    limiter = RateLimiter(clock=clock, sweep_interval=30)
    for i in range(50):
        limiter.hit(f"auth:login:ip:10.0.0.{i}", limit=5, per_seconds=60)
    for _ in range(5):
        limiter.hit("auth:login:ip:10.0.1.1", limit=5, per_seconds=60)
    assert len(limiter) == 51

    # 10.0.1.1 esvaziou o bucket; os outros gastaram só um token
    clock.now += 31
    limiter.hit("auth:login:ip:10.0.2.2", limit=5, per_seconds=60)
    assert len(limiter) == 2

    clock.now += 60
    limiter.hit("auth:login:ip:10.0.2.2", limit=5, per_seconds=60)
    assert len(limiter) == 1
