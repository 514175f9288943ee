"""
CircuitBreakerRegistry — the set of named breakers for one runtime.

Constructed explicitly and handed to whatever needs a breaker (the batch
runner, Celery tasks).  Tests build their own registry with a fake clock.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from typing import Any, Awaitable, Callable

from silver.core.constants import CircuitState
from silver.core.logging import get_logger
from silver.resilience.circuit_breaker import BREAKER_PRESETS, BreakerConfig, CircuitBreaker

logger = get_logger(__name__)


class CircuitBreakerRegistry:
    """
    Hands out one breaker per resource name, creating it on first use from
    an explicit config, else the preset of the same name, else defaults.
    """

    def __init__(
        self,
        presets: dict[str, BreakerConfig] | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.presets = dict(BREAKER_PRESETS if presets is None else presets)
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str, config: BreakerConfig | None = None) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    config or self.presets.get(name) or BreakerConfig(),
                    clock=self._clock,
                    sleep=self._sleep,
                    rng=self._rng,
                )
                self._breakers[name] = breaker
                logger.info("Circuit breaker registered", circuit=name, config=breaker.config)
            return breaker

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def names(self) -> list[str]:
        return sorted(self._breakers)

    def all_metrics(self) -> dict[str, dict[str, Any]]:
        return {name: self._breakers[name].metrics() for name in self.names()}

    def open_circuits(self) -> list[str]:
        return [name for name in self.names() if self._breakers[name].state == CircuitState.OPEN]

    def has_open_circuits(self) -> bool:
        return bool(self.open_circuits())

    def reset_all(self) -> None:
        for name in self.names():
            self._breakers[name].reset()
        logger.info("All circuit breakers reset", count=len(self._breakers))
