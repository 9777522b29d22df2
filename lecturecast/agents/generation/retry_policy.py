"""
Single retry policy object.

Whichever layer owns retries for an operation receives one of these: the work
queue for whole jobs, the visual generator for individual model calls. The two
are never stacked on the same operation.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from lecturecast.agents.generation.exceptions import (
    AIRateLimitError, ValidationError, get_retry_delay
)
from lecturecast.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _default_retry_on(error: BaseException) -> bool:
    return not isinstance(error, ValidationError)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a bounded attempt count."""
    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.0
    retry_on: Callable[[BaseException], bool] = field(default=_default_retry_on, compare=False)

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Delay before the attempt following `attempt` (1-based)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if isinstance(error, AIRateLimitError):
            delay = max(delay, get_retry_delay(error, attempt - 1))
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return attempt < self.attempts and self.retry_on(error)

    async def run(self, func: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """Await `func` until it succeeds or attempts run out; re-raises the last error."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.delay_for(attempt, e)
                logger.warning(
                    f"[RETRY] {label} attempt {attempt}/{self.attempts} failed: {e}; retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    async def run_or_none(self, func: Callable[[], Awaitable[Optional[T]]], label: str = "operation") -> Optional[T]:
        """Like run(), but exhaustion yields None instead of raising."""
        try:
            return await self.run(func, label)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[RETRY] {label} gave up after {self.attempts} attempts: {e}")
            return None


NO_RETRY = RetryPolicy(attempts=1)
