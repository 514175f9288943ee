"""
CircuitBreaker — timeout, retry with backoff, and CLOSED/OPEN/HALF_OPEN
failure isolation around any async operation.

    CLOSED     → OPEN       consecutive failures ≥ failure_threshold
    OPEN       → HALF_OPEN  first call at/after next_attempt_time (lazy)
    HALF_OPEN  → CLOSED     success_threshold successes
    HALF_OPEN  → OPEN       any failure (recovery timer restarts)

One `execute()` call is one outcome for the state machine regardless of
how many retries it used.  Callers always get a BreakerResult back; I/O
errors are never raised through.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from silver.core.constants import CircuitState
from silver.core.logging import get_logger
from silver.pipeline.errors import CircuitOpenError, OperationTimeoutError
from silver.resilience.classification import is_retriable, should_retry

logger = get_logger(__name__)

RESPONSE_WINDOW = 100
JITTER_RATIO = 0.1


# ═══════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BreakerConfig:
    """Times are in seconds."""

    failure_threshold: int = 5
    timeout: float = 10.0
    recovery_time: float = 30.0
    success_threshold: int = 3
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_delay: float = 8.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ValueError("Breaker thresholds must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.timeout <= 0 or self.recovery_time < 0:
            raise ValueError("timeout must be > 0 and recovery_time >= 0")


BREAKER_PRESETS: dict[str, BreakerConfig] = {
    # Fast and strict: a transactional store should answer quickly
    "database": BreakerConfig(
        failure_threshold=3,
        timeout=5.0,
        recovery_time=10.0,
        success_threshold=2,
        max_retries=2,
        retry_delay=0.5,
        max_retry_delay=2.0,
    ),
    # Captured documents on an external drive or share
    "document_store": BreakerConfig(
        failure_threshold=5,
        timeout=10.0,
        recovery_time=30.0,
        success_threshold=3,
        max_retries=3,
        retry_delay=1.0,
        max_retry_delay=8.0,
    ),
    # Bulk file I/O: slow and lenient
    "file_processing": BreakerConfig(
        failure_threshold=10,
        timeout=30.0,
        recovery_time=60.0,
        success_threshold=5,
        max_retries=1,
        retry_delay=2.0,
        max_retry_delay=5.0,
    ),
}


# ═══════════════════════════════════════════════════════════
#  Results & snapshots
# ═══════════════════════════════════════════════════════════

@dataclass
class BreakerResult:
    """Terminal outcome of one `execute()` call."""

    success: bool
    data: Any = None
    error: BaseException | None = None
    retry_count: int = 0
    response_time: float = 0.0
    short_circuited: bool = False

    def unwrap(self) -> Any:
        """Return `data`, or raise the captured error."""
        if not self.success and self.error is not None:
            raise self.error
        return self.data


@dataclass(frozen=True)
class CircuitBreakerState:
    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: float | None
    next_attempt_time: float | None


@dataclass
class BreakerStats:
    """Operator-facing counters; not consulted by the state machine."""

    total_operations: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    short_circuited: int = 0
    last_success_time: float | None = None
    response_times: deque = field(default_factory=lambda: deque(maxlen=RESPONSE_WINDOW))

    @property
    def success_rate(self) -> float:
        if self.total_operations == 0:
            return 0.0
        return round(self.successful_operations / self.total_operations * 100, 2)

    @property
    def average_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return round(sum(self.response_times) / len(self.response_times), 4)


# ═══════════════════════════════════════════════════════════
#  Breaker
# ═══════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Named breaker shared by every caller of one resource.

    State transitions happen under an RLock and never across an await, so
    concurrent callers (threads or tasks) cannot double-apply a transition.

    Args:
        name: Resource name, used in logs and metrics.
        config: Thresholds and timings.
        clock: Returns seconds; injectable for tests.
        sleep: Async sleep used between retries; injectable for tests.
        rng: Returns a float in [0, 1) for backoff jitter.
    """

    def __init__(
        self,
        name: str,
        config: BreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.name = name
        self.config = config or BreakerConfig()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._next_attempt_time: float | None = None
        self.stats = BreakerStats()

        self.log = logger.bind(circuit=name)

    # ─── State ────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                success_count=self._success_count,
                last_failure_time=self._last_failure_time,
                next_attempt_time=self._next_attempt_time,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
            self._next_attempt_time = None
            self.stats = BreakerStats()
        self.log.info("Circuit breaker reset")

    # ─── Execution ────────────────────────────────────

    async def execute(self, operation: Callable[[], Awaitable[Any]]) -> BreakerResult:
        """
        Run `operation` (a zero-arg coroutine factory, called once per
        attempt) through the breaker.
        """
        start = self._clock()
        if not self._allow_request():
            with self._lock:
                self.stats.short_circuited += 1
                retry_after = max(0.0, (self._next_attempt_time or start) - start)
            self.log.warning(
                "Call short-circuited, circuit is OPEN",
                failure_count=self._failure_count,
                retry_after=retry_after,
            )
            return BreakerResult(
                success=False,
                error=CircuitOpenError(
                    f"Circuit breaker '{self.name}' is OPEN",
                    circuit_name=self.name,
                    retry_after=retry_after,
                ),
                short_circuited=True,
            )

        attempt = 0
        while True:
            deadline = asyncio.timeout(self.config.timeout)
            try:
                async with deadline:
                    data = await operation()
            except TimeoutError as exc:
                error: BaseException = exc
                # A TimeoutError raised by the operation itself passes through as is
                if deadline.expired():
                    error = OperationTimeoutError(
                        f"Operation timeout after {self.config.timeout}s",
                        timeout=self.config.timeout,
                    )
            except Exception as exc:
                error = exc
            else:
                elapsed = self._clock() - start
                self._on_success(elapsed)
                return BreakerResult(
                    success=True,
                    data=data,
                    retry_count=attempt,
                    response_time=elapsed,
                )

            self.log.debug(
                "Breaker attempt failed",
                attempt=attempt,
                retriable=is_retriable(error),
                error=str(error),
            )
            if not should_retry(error, attempt, self.config.max_retries):
                break
            await self._sleep(self.retry_delay(attempt))
            attempt += 1

        elapsed = self._clock() - start
        self._on_failure(elapsed, error)
        return BreakerResult(
            success=False,
            error=error,
            retry_count=attempt,
            response_time=elapsed,
        )

    def retry_delay(self, attempt: int) -> float:
        """min(base · 2^attempt, max) plus up to 10% jitter."""
        delay = min(self.config.retry_delay * (2 ** attempt), self.config.max_retry_delay)
        return delay + self._rng() * JITTER_RATIO * delay

    # ─── Transitions ──────────────────────────────────

    def _allow_request(self) -> bool:
        with self._lock:
            if self._state != CircuitState.OPEN:
                return True
            if self._next_attempt_time is not None and self._clock() >= self._next_attempt_time:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                self.log.info("Circuit breaker HALF_OPEN, attempting recovery")
                return True
            return False

    def _on_success(self, elapsed: float) -> None:
        with self._lock:
            self.stats.total_operations += 1
            self.stats.successful_operations += 1
            self.stats.last_success_time = self._clock()
            self.stats.response_times.append(elapsed)

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    self._success_count = 0
                    self._next_attempt_time = None
                    self.log.info("Circuit breaker CLOSED after successful recovery")
            else:
                self._failure_count = 0

    def _on_failure(self, elapsed: float, error: BaseException) -> None:
        with self._lock:
            now = self._clock()
            self.stats.total_operations += 1
            self.stats.failed_operations += 1
            self.stats.response_times.append(elapsed)
            self._failure_count += 1
            self._last_failure_time = now

            if self._state == CircuitState.HALF_OPEN:
                self._open(now)
                self.log.warning("Circuit breaker returned to OPEN from HALF_OPEN", error=str(error))
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._open(now)
                self.log.error(
                    "Circuit breaker OPEN, failure threshold reached",
                    failure_count=self._failure_count,
                    threshold=self.config.failure_threshold,
                    next_attempt_time=self._next_attempt_time,
                    error=str(error),
                )
            else:
                self.log.warning(
                    "Circuit breaker operation failed",
                    failure_count=self._failure_count,
                    state=self._state,
                    error=str(error),
                )

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._success_count = 0
        self._next_attempt_time = now + self.config.recovery_time

    # ─── Metrics ──────────────────────────────────────

    def metrics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "total_operations": self.stats.total_operations,
                "successful_operations": self.stats.successful_operations,
                "failed_operations": self.stats.failed_operations,
                "short_circuited": self.stats.short_circuited,
                "success_rate": self.stats.success_rate,
                "average_response_time": self.stats.average_response_time,
                "last_failure_time": self._last_failure_time,
                "last_success_time": self.stats.last_success_time,
                "next_attempt_time": self._next_attempt_time,
            }
