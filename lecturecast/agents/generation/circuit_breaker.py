"""
Circuit breaker guarding calls to the external generation service.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, TypeVar

from lecturecast.agents.generation.exceptions import CircuitOpenError
from lecturecast.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Opens after `failure_threshold` consecutive failures; probes again after `reset_timeout`."""

    def __init__(self, name: str, failure_threshold: int = 3, reset_timeout: float = 10.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.successes = 0
        self.last_failure_time = 0.0

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and time.monotonic() - self.last_failure_time < self.reset_timeout

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        if self.state == CircuitState.OPEN:
            if self.is_open:
                raise CircuitOpenError(f"Circuit breaker {self.name} is OPEN", context=self.stats())
            self.state = CircuitState.HALF_OPEN
            logger.info(f"[BREAKER:{self.name}] Entering HALF_OPEN state")

        try:
            result = await func()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        self.failures = 0
        self.successes += 1
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            logger.info(f"[BREAKER:{self.name}] Recovered, now CLOSED")

    def _on_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(f"[BREAKER:{self.name}] Now OPEN after {self.failures} failures")

    def stats(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'state': self.state.value,
            'failures': self.failures,
            'successes': self.successes,
        }
