"""
Rate Limiter Tests

Drives TokenBucketRateLimiter with a fake clock so no test sleeps.
"""

import asyncio

import pytest

from reboot_operator.common.rate_limit import TokenBucketRateLimiter


class FakeClock:
    """Monotonic clock whose sleep just advances time"""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_bucket_starts_full():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(qps=0.2, burst=1, clock=clock, sleep=clock.sleep)

    asyncio.run(limiter.accept())

    assert clock.sleeps == []
    assert clock.now == 0.0


def test_default_rate_spaces_passes_five_seconds_apart():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(qps=0.2, burst=1, clock=clock, sleep=clock.sleep)

    async def three_passes():
        times = []
        for _ in range(3):
            await limiter.accept()
            times.append(clock.now)
        return times

    times = asyncio.run(three_passes())

    assert times == pytest.approx([0.0, 5.0, 10.0])
    assert limiter.waited_seconds == pytest.approx(10.0)


def test_slow_pass_does_not_wait_again():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(qps=0.2, burst=1, clock=clock, sleep=clock.sleep)

    async def scenario():
        await limiter.accept()
        # The pass itself took longer than the refill interval
        clock.now += 60.0
        await limiter.accept()

    asyncio.run(scenario())
    assert clock.sleeps == []


def test_tokens_cap_at_burst():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(qps=1.0, burst=2, clock=clock, sleep=clock.sleep)

    assert limiter.try_accept()
    assert limiter.try_accept()
    assert not limiter.try_accept()

    clock.now += 100.0
    assert limiter.available_tokens == pytest.approx(2.0)
    assert limiter.try_accept()
    assert limiter.try_accept()
    assert not limiter.try_accept()


def test_partial_refill_waits_for_remainder():
    clock = FakeClock()
    limiter = TokenBucketRateLimiter(qps=0.5, burst=1, clock=clock, sleep=clock.sleep)

    async def scenario():
        await limiter.accept()
        clock.now += 1.0  # half a token back
        await limiter.accept()

    asyncio.run(scenario())
    assert sum(clock.sleeps) == pytest.approx(1.0)


def test_invalid_arguments():
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(qps=0, burst=1)
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(qps=1, burst=0)
