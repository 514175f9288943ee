"""Tests for the circuit breaker state machine, retries and timeouts."""

import asyncio

import pytest

from silver.core.constants import CircuitState
from silver.pipeline.errors import CircuitOpenError, OperationTimeoutError
from silver.resilience.circuit_breaker import BREAKER_PRESETS, BreakerConfig, CircuitBreaker


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class Op:
    """Zero-arg coroutine factory that fails a set number of times."""

    def __init__(self, failures=0, error=None, value="ok"):
        self.failures = failures
        self.error = error or ConnectionResetError("reset by peer")
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_breaker(clock, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    def _make(**overrides):
        params = dict(
            failure_threshold=3,
            recovery_time=30.0,
            success_threshold=2,
            max_retries=0,
            retry_delay=1.0,
            max_retry_delay=8.0,
        )
        params.update(overrides)
        return CircuitBreaker(
            "test",
            BreakerConfig(**params),
            clock=clock,
            sleep=fake_sleep,
            rng=lambda: 0.0,
        )

    return _make


async def _fail(breaker, times=1):
    for _ in range(times):
        await breaker.execute(Op(failures=1, error=ValueError("boom")))


# ═══════════════════════════════════════════════════════════
#  State machine
# ═══════════════════════════════════════════════════════════

class TestStateMachine:

    @pytest.mark.asyncio
    async def test_opens_at_failure_threshold(self, make_breaker):
        breaker = make_breaker()
        await _fail(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        await _fail(breaker)
        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, make_breaker):
        breaker = make_breaker()
        await _fail(breaker, 2)
        await breaker.execute(Op())
        await _fail(breaker, 2)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.snapshot().failure_count == 2

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self, make_breaker, clock):
        breaker = make_breaker()
        await _fail(breaker, 3)
        clock.advance(10)

        op = Op()
        result = await breaker.execute(op)

        assert op.calls == 0
        assert not result.success
        assert result.short_circuited
        assert isinstance(result.error, CircuitOpenError)
        assert result.error.circuit_name == "test"
        assert result.error.retry_after == pytest.approx(20.0)
        assert breaker.metrics()["short_circuited"] == 1

    @pytest.mark.asyncio
    async def test_half_open_then_closed(self, make_breaker, clock):
        breaker = make_breaker()
        await _fail(breaker, 3)
        clock.advance(30)

        first = await breaker.execute(Op())
        assert first.success
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.execute(Op())
        assert breaker.state == CircuitState.CLOSED
        snapshot = breaker.snapshot()
        assert snapshot.failure_count == 0
        assert snapshot.next_attempt_time is None

    @pytest.mark.asyncio
    async def test_failure_in_half_open_reopens(self, make_breaker, clock):
        breaker = make_breaker()
        await _fail(breaker, 3)
        clock.advance(31)

        await _fail(breaker)
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot().next_attempt_time == clock.now + 30

        clock.advance(29)
        result = await breaker.execute(Op())
        assert result.short_circuited

    @pytest.mark.asyncio
    async def test_reset(self, make_breaker):
        breaker = make_breaker()
        await _fail(breaker, 3)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.metrics()["total_operations"] == 0


class TestConcurrentCallers:

    @staticmethod
    def _count_opens(breaker):
        opened = []
        open_circuit = breaker._open

        def counting(now):
            opened.append(now)
            open_circuit(now)

        breaker._open = counting
        return opened

    @staticmethod
    async def _failing():
        await asyncio.sleep(0)
        raise ValueError("boom")

    @pytest.mark.asyncio
    async def test_concurrent_failures_open_once(self, make_breaker, clock):
        breaker = make_breaker()
        opened = self._count_opens(breaker)

        results = await asyncio.gather(*(breaker.execute(self._failing) for _ in range(8)))

        assert not any(r.success for r in results)
        assert opened == [clock.now]
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot().next_attempt_time == clock.now + 30
        assert breaker.metrics()["failed_operations"] == 8

    @pytest.mark.asyncio
    async def test_concurrent_trial_failures_reopen_once(self, make_breaker, clock):
        breaker = make_breaker()
        await _fail(breaker, 3)
        clock.advance(30)
        opened = self._count_opens(breaker)

        results = await asyncio.gather(*(breaker.execute(self._failing) for _ in range(5)))

        assert not any(r.short_circuited for r in results)
        assert opened == [clock.now]
        assert breaker.state == CircuitState.OPEN
        assert breaker.snapshot().next_attempt_time == clock.now + 30

        later = await breaker.execute(Op())
        assert later.short_circuited


# ═══════════════════════════════════════════════════════════
#  Retries and timeouts
# ═══════════════════════════════════════════════════════════

class TestRetries:

    @pytest.mark.asyncio
    async def test_retriable_error_uses_every_retry(self, make_breaker, sleeps):
        breaker = make_breaker(max_retries=3)
        op = Op(failures=10)

        result = await breaker.execute(op)

        assert not result.success
        assert op.calls == 4
        assert result.retry_count == 3
        assert sleeps == [1.0, 2.0, 4.0]
        # One execute() is one failure, however many attempts it made
        assert breaker.snapshot().failure_count == 1

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self, make_breaker, sleeps):
        breaker = make_breaker(max_retries=3)
        op = Op(failures=10, error=FileNotFoundError("missing.html"))

        result = await breaker.execute(op)

        assert op.calls == 1
        assert result.retry_count == 0
        assert sleeps == []
        assert isinstance(result.error, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_recovers_within_retries(self, make_breaker):
        breaker = make_breaker(max_retries=3)
        result = await breaker.execute(Op(failures=2, value=42))
        assert result.success
        assert result.data == 42
        assert result.retry_count == 2
        assert breaker.metrics()["success_rate"] == 100.0

    @pytest.mark.asyncio
    async def test_timeout(self, make_breaker):
        breaker = make_breaker(timeout=0.05)

        async def slow():
            await asyncio.sleep(1)

        result = await breaker.execute(slow)

        assert not result.success
        assert isinstance(result.error, OperationTimeoutError)
        assert isinstance(result.error, TimeoutError)
        assert result.error.timeout == 0.05
        with pytest.raises(OperationTimeoutError):
            result.unwrap()

    @pytest.mark.asyncio
    async def test_operation_timeout_error_keeps_its_message(self, make_breaker):
        breaker = make_breaker(timeout=5.0)
        upstream = TimeoutError("upstream read timed out")

        result = await breaker.execute(Op(failures=1, error=upstream))

        assert result.error is upstream
        assert str(result.error) == "upstream read timed out"
        assert not isinstance(result.error, OperationTimeoutError)


class TestRetryDelay:

    def test_exponential_then_capped(self, make_breaker):
        breaker = make_breaker()
        assert [breaker.retry_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_jitter_is_at_most_ten_percent(self, clock):
        config = BreakerConfig(retry_delay=1.0, max_retry_delay=8.0)
        breaker = CircuitBreaker("jitter", config, clock=clock, rng=lambda: 0.5)
        assert breaker.retry_delay(10) == pytest.approx(8.4)


class TestConfig:

    def test_presets(self):
        database = BREAKER_PRESETS["database"]
        assert (database.failure_threshold, database.timeout, database.recovery_time) == (3, 5.0, 10.0)
        assert BREAKER_PRESETS["document_store"].max_retry_delay == 8.0
        assert BREAKER_PRESETS["file_processing"].max_retries == 1

    @pytest.mark.parametrize("overrides", [
        {"failure_threshold": 0},
        {"success_threshold": 0},
        {"max_retries": -1},
        {"timeout": 0},
    ])
    def test_rejects_invalid_config(self, overrides):
        with pytest.raises(ValueError):
            BreakerConfig(**overrides)
