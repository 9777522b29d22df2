"""
Narration/animation synchronization for one visual.

The next visual may not start before

    max(animation, narration) + inter_visual_pause

where each of the two signals only counts when its wait flag is set in the
batch's TTSConfig. Missing narration degrades to animation + pause and never
blocks: a playing narration is given its declared duration plus a grace period
and then abandoned.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import NarrationEntry, TTSConfig

logger = get_logger(__name__)

NARRATION_GRACE_SECONDS = 2.0


def required_wait(animation_duration: float, narration_duration: Optional[float], config: TTSConfig) -> float:
    """Minimum seconds between the start of one visual and the start of the next."""
    pause = config.interVisualDelay / 1000.0
    animation = animation_duration if config.waitForAnimation else 0.0
    narration = 0.0
    if config.enabled and config.waitForNarration and narration_duration is not None:
        narration = narration_duration
    return max(animation, narration) + pause


class NarrationPlayer(ABC):
    """Speaks one narration entry; returns when speech has finished."""

    @abstractmethod
    async def play(self, entry: NarrationEntry) -> None:
        pass


class TimedNarrationPlayer(NarrationPlayer):
    """Holds for the entry's declared duration; used when no audio backend is attached."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep

    async def play(self, entry: NarrationEntry) -> None:
        await self._sleep(entry.duration)


class PlaybackSynchronizer:
    def __init__(
        self,
        player: Optional[NarrationPlayer] = None,
        grace: float = NARRATION_GRACE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.player = player or TimedNarrationPlayer(sleep)
        self.grace = grace
        self._sleep = sleep

    def start(self, narration: Optional[NarrationEntry], config: TTSConfig) -> Optional[asyncio.Task]:
        """Begin narration alongside the visual's render; None when there is nothing to say."""
        if narration is None or not config.enabled:
            return None
        return asyncio.create_task(self._bounded(narration))

    async def _bounded(self, narration: NarrationEntry) -> None:
        try:
            await asyncio.wait_for(self.player.play(narration), timeout=narration.duration + self.grace)
        except asyncio.TimeoutError:
            logger.warning(f"[SYNC] Narration for visual {narration.visualNumber} overran, continuing")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SYNC] Narration for visual {narration.visualNumber} failed: {e}")

    async def finish(
        self,
        animation_duration: float,
        narration_task: Optional[asyncio.Task],
        config: TTSConfig,
    ) -> None:
        """Wait out the animation and narration as the flags require, then pause."""
        timer = None
        if config.waitForAnimation and animation_duration > 0:
            timer = asyncio.ensure_future(self._sleep(animation_duration))
        waits = [timer] if timer is not None else []
        if narration_task is not None and config.waitForNarration:
            waits.append(narration_task)
        try:
            # A narration cancelled by hard_reset ends the wait without raising
            if waits:
                await asyncio.wait(waits)
        finally:
            if timer is not None and not timer.done():
                timer.cancel()
        if config.interVisualDelay > 0:
            await self._sleep(config.interVisualDelay / 1000.0)

    async def play_visual(
        self,
        render: Awaitable[None],
        animation_duration: float,
        narration: Optional[NarrationEntry],
        config: TTSConfig,
    ) -> None:
        """Render, animation and narration for one visual, honouring required_wait()."""
        narration_task = self.start(narration, config)
        try:
            await render
            await self.finish(animation_duration, narration_task, config)
        finally:
            if narration_task is not None and not narration_task.done():
                narration_task.cancel()
