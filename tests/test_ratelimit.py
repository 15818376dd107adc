"""Tests for adaptive request spacing."""

from __future__ import annotations

import asyncio

import pytest

from remote_contents._ratelimit import RateLimiter
from tests.conftest import FakeClock


class RecordingSleep:
    """Records requested waits and advances a fake clock accordingly."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        self.clock.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def limiter(clock: FakeClock, sleeper: RecordingSleep) -> RateLimiter:
    return RateLimiter(100, min_delay_ms=50, max_delay_ms=2000, clock=clock, sleep=sleeper)


class TestAwaitSlot:
    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self, limiter: RateLimiter, sleeper: RecordingSleep) -> None:
        await limiter.await_slot()
        assert sleeper.waits == []

    @pytest.mark.asyncio
    async def test_back_to_back_requests_are_spaced(
        self, limiter: RateLimiter, sleeper: RecordingSleep, clock: FakeClock
    ) -> None:
        await limiter.await_slot()
        clock.advance(0.03)
        await limiter.await_slot()
        assert sleeper.waits == [pytest.approx(0.07)]

    @pytest.mark.asyncio
    async def test_no_wait_once_delay_has_elapsed(
        self, limiter: RateLimiter, sleeper: RecordingSleep, clock: FakeClock
    ) -> None:
        await limiter.await_slot()
        clock.advance(0.5)
        await limiter.await_slot()
        assert sleeper.waits == []

    @pytest.mark.asyncio
    async def test_records_slot_time(self, limiter: RateLimiter, clock: FakeClock) -> None:
        await limiter.await_slot()
        assert limiter.last_request_at == clock.now

    @pytest.mark.asyncio
    async def test_concurrent_callers_are_serialized(self, limiter: RateLimiter, sleeper: RecordingSleep) -> None:
        await asyncio.gather(*(limiter.await_slot() for _ in range(3)))
        assert sleeper.waits == [pytest.approx(0.1), pytest.approx(0.1)]


class TestRecordOutcome:
    def test_throttling_backs_off_by_half(self, limiter: RateLimiter) -> None:
        limiter.record_outcome(False, throttled=True)
        assert limiter.current_delay_ms == pytest.approx(150)

    def test_success_recovers_slowly(self, limiter: RateLimiter) -> None:
        limiter.record_outcome(True)
        assert limiter.current_delay_ms == pytest.approx(95)

    def test_plain_failure_leaves_delay_unchanged(self, limiter: RateLimiter) -> None:
        limiter.record_outcome(False)
        assert limiter.current_delay_ms == 100

    def test_back_off_is_monotonic_and_capped(self, limiter: RateLimiter) -> None:
        previous = limiter.current_delay_ms
        for _ in range(20):
            limiter.record_outcome(False, throttled=True)
            assert limiter.current_delay_ms >= previous
            assert limiter.current_delay_ms <= 2000
            previous = limiter.current_delay_ms
        assert limiter.current_delay_ms == 2000

    def test_recovery_trends_down_but_respects_floor(self, limiter: RateLimiter) -> None:
        for _ in range(5):
            limiter.record_outcome(False, throttled=True)
        high = limiter.current_delay_ms
        for _ in range(200):
            limiter.record_outcome(True)
            assert limiter.current_delay_ms >= 50
        assert limiter.current_delay_ms < high
        assert limiter.current_delay_ms == 50


class TestConstruction:
    def test_initial_delay_clamped_to_bounds(self) -> None:
        assert RateLimiter(10, min_delay_ms=50, max_delay_ms=100).current_delay_ms == 50
        assert RateLimiter(500, min_delay_ms=50, max_delay_ms=100).current_delay_ms == 100

    def test_inverted_bounds_rejected(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(100, min_delay_ms=500, max_delay_ms=100)
