"""
Client-side animation queue.

Actions arrive from the delivery channel as (action, section) pairs and are
played strictly one at a time in arrival order. Each render is awaited before
the next begins, raced against a fixed timeout so a stuck renderer cannot stall
the lecture. After a render the queue waits the op's pacing delay; self-timed
ops ('delay') wait their own duration instead.

The canvas is append-only: nothing is erased unless an explicit clear action
comes through the queue.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from lecturecast.client.playback_sync import PlaybackSynchronizer
from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import Action, NarrationEntry, TTSConfig
from lecturecast.models.pacing import STEP_BOUNDARY_PAUSE, own_duration, pacing_for

logger = get_logger(__name__)

DEFAULT_RENDER_TIMEOUT = 30.0
MIN_SPEED = 0.1
MAX_SPEED = 5.0


class IRenderer(ABC):
    """Draws actions onto a persistent canvas.

    Implementations must never erase prior content on their own; only an
    action whose op is 'clear' may do so.
    """

    @abstractmethod
    async def process_action(self, action: Action, section: "SectionContext") -> None:
        pass


@dataclass
class SectionContext:
    """Step context shared by the actions of one enqueue() call"""
    step_id: int
    visual_group: Optional[str] = None
    narration: Optional[NarrationEntry] = None
    tts: Optional[TTSConfig] = None
    animation_duration: float = 0.0
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueueItem:
    action: Action
    section: SectionContext
    enqueued_at: float = field(default_factory=time.time)
    opens_section: bool = False
    closes_section: bool = False


@dataclass
class PlaybackState:
    queue: List[QueueItem] = field(default_factory=list)
    current_index: int = 0
    is_playing: bool = False
    is_paused: bool = False
    current_step_id: Optional[int] = None


class AnimationQueue:
    def __init__(
        self,
        renderer: IRenderer,
        render_timeout: float = DEFAULT_RENDER_TIMEOUT,
        step_pause: float = STEP_BOUNDARY_PAUSE,
        synchronizer: Optional[PlaybackSynchronizer] = None,
        on_step_complete: Optional[Callable[[int], None]] = None,
        on_progress: Optional[Callable[[float], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.renderer = renderer
        self.render_timeout = render_timeout
        self.step_pause = step_pause
        self.synchronizer = synchronizer
        self.on_step_complete = on_step_complete
        self.on_progress = on_progress
        self.state = PlaybackState()
        self.speed = 1.0
        self._sleep = sleep
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._task_generation = 0
        self._resume = asyncio.Event()
        self._resume.set()
        # Narration started by each playback loop, keyed by loop generation
        self._narration_tasks: Dict[int, asyncio.Task] = {}

    def enqueue(self, actions: Iterable[Action], section: SectionContext) -> int:
        """Append actions behind everything already queued; returns how many were added."""
        items = [QueueItem(action=action, section=section) for action in actions]
        if not items:
            return 0
        items[0].opens_section = True
        items[-1].closes_section = True
        self.state.queue.extend(items)
        logger.debug(f"[QUEUE-CLIENT] Enqueued {len(items)} actions for step {section.step_id} ({self.remaining} pending)")
        return len(items)

    @property
    def remaining(self) -> int:
        return len(self.state.queue) - self.state.current_index

    def play(self) -> asyncio.Task:
        """Start the playback loop. Calling again while it runs is a no-op."""
        if self._task is not None and not self._task.done() and self._task_generation == self._generation:
            return self._task
        self.state.is_playing = True
        self._task_generation = self._generation
        self._task = asyncio.create_task(self._run(self._generation))
        return self._task

    async def wait_idle(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self, generation: int) -> None:
        narration: Optional[asyncio.Task] = None
        try:
            while generation == self._generation and self.state.current_index < len(self.state.queue):
                if self.state.is_paused:
                    await self._resume.wait()
                    continue

                index = self.state.current_index
                item = self.state.queue[index]

                if self.state.current_step_id is not None and item.section.step_id != self.state.current_step_id:
                    finished = self.state.current_step_id
                    logger.info(f"[QUEUE-CLIENT] Step {finished} complete, pausing before step {item.section.step_id}")
                    if self.on_step_complete:
                        self.on_step_complete(finished)
                    await self._sleep(self.step_pause * self.speed)
                    if generation != self._generation:
                        break
                self.state.current_step_id = item.section.step_id

                narration = await self._execute(item, narration, generation)

                if generation != self._generation:
                    break
                # A seek during the render already moved the cursor
                if self.state.current_index == index:
                    self.state.current_index = index + 1
                if self.on_progress:
                    self.on_progress(self.progress())
        finally:
            self._narration_tasks.pop(generation, None)
            if generation == self._generation:
                self.state.is_playing = False

    async def _execute(
        self,
        item: QueueItem,
        narration: Optional[asyncio.Task],
        generation: int,
    ) -> Optional[asyncio.Task]:
        """Play one item; returns the narration still running for its section."""
        section = item.section
        synced = self.synchronizer is not None and section.tts is not None
        if synced and item.opens_section:
            narration = self.synchronizer.start(section.narration, section.tts)
            if narration is not None:
                self._narration_tasks[generation] = narration

        await self._render(item)

        # Superseded by hard_reset while rendering
        if generation != self._generation:
            return None

        if synced and item.closes_section:
            self._narration_tasks.pop(generation, None)
            await self.synchronizer.finish(section.animation_duration, narration, section.tts)
            return None

        own = own_duration(item.action)
        delay = own if own is not None else pacing_for(item.action.op)
        await self._sleep(delay * self.speed)
        return narration

    async def _render(self, item: QueueItem) -> None:
        try:
            await asyncio.wait_for(
                self.renderer.process_action(item.action, item.section),
                timeout=self.render_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"[QUEUE-CLIENT] Render of '{item.action.op}' timed out after {self.render_timeout}s, skipping")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[QUEUE-CLIENT] Render of '{item.action.op}' failed, skipping: {e}")

    def pause(self) -> None:
        """Stop before the next action; the in-flight one finishes."""
        self.state.is_paused = True
        self._resume.clear()

    def resume(self) -> None:
        self.state.is_paused = False
        self._resume.set()
        if self.remaining > 0:
            self.play()

    def set_speed(self, factor: float) -> float:
        """Multiplier applied to every pacing delay, clamped to [0.1, 5.0]."""
        self.speed = min(MAX_SPEED, max(MIN_SPEED, float(factor)))
        return self.speed

    def hard_reset(self) -> None:
        """Drop everything queued and stop. The in-flight render is left to finish."""
        narration = self._narration_tasks.pop(self._generation, None)
        if narration is not None:
            narration.cancel()
        self._generation += 1
        self.state = PlaybackState()
        self._resume.set()
        logger.info("[QUEUE-CLIENT] Hard reset")

    def seek_next_step(self) -> bool:
        queue, index = self.state.queue, self.state.current_index
        if index >= len(queue):
            return False
        step_id = queue[index].section.step_id
        for i in range(index, len(queue)):
            if queue[i].section.step_id != step_id:
                self._seek(i)
                return True
        return False

    def seek_previous_step(self) -> bool:
        queue, index = self.state.queue, min(self.state.current_index, len(self.state.queue) - 1)
        if index < 0:
            return False
        step_id = queue[index].section.step_id
        start = index
        while start > 0 and queue[start - 1].section.step_id == step_id:
            start -= 1
        if start == 0:
            return False
        previous = queue[start - 1].section.step_id
        while start > 0 and queue[start - 1].section.step_id == previous:
            start -= 1
        self._seek(start)
        return True

    def _seek(self, index: int) -> None:
        logger.info(f"[QUEUE-CLIENT] Seek to index {index} (step {self.state.queue[index].section.step_id})")
        self.state.current_index = index
        self.state.current_step_id = self.state.queue[index].section.step_id

    def progress(self) -> float:
        """Fraction of known items consumed; the total grows as more arrive."""
        total = len(self.state.queue)
        return self.state.current_index / total if total else 0.0

    def status(self) -> Dict[str, Any]:
        return {
            "total": len(self.state.queue),
            "current": self.state.current_index,
            "isPlaying": self.state.is_playing,
            "isPaused": self.state.is_paused,
            "currentStepId": self.state.current_step_id,
            "speed": self.speed,
            "progress": self.progress(),
        }
