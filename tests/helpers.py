"""
Shared fakes for the test suite: in-memory collaborators, settings with short
timings, and helpers for reading subscriber queues.
"""

import asyncio
import tempfile
import time
from typing import Any, Dict, List, Optional, Set

import diskcache

from lecturecast.agents.core.interfaces import (
    GenerationCollaborators, INarrationGenerator, INotesGenerator, IPlanGenerator,
    IVisualGenerator, VisualDescriptor
)
from lecturecast.agents.generation.compiler_router import CompilerRouter
from lecturecast.agents.generation.exceptions import AIGenerationError
from lecturecast.agents.generation.orchestration import LectureOrchestrator
from lecturecast.agents.persistence.cache import CacheStore
from lecturecast.agents.persistence.session_store import SessionStore
from lecturecast.config import (
    CacheConfig, GenerationConfig, LogConfig, PlaybackConfig, QueueConfig, Settings
)
from lecturecast.models.lecture import (
    Action, NarrationBundle, NarrationEntry, NotesDocument, Plan, PlanStep, VisualArtifact
)
from lecturecast.services.delivery_channel import DeliveryChannel, Subscriber


def make_plan(num_steps: int = 3, first_id: int = 0, compiler: str = "js") -> Plan:
    return Plan(
        title="Intro to X",
        subtitle="From first principles",
        toc=["Basics", "Details"],
        steps=[
            PlanStep(id=first_id + i, desc=f"Step {i} description", tag=f"tag_{i}", compiler=compiler)
            for i in range(num_steps)
        ],
    )


def make_visual(duration: float = 3.0, op: str = "customSVG") -> VisualArtifact:
    return VisualArtifact(
        actions=[Action(op=op, svgCode="<svg></svg>")],
        description="A moving dot",
        animationDuration=duration,
    )


class FakePlanner(IPlanGenerator):
    def __init__(self, plan: Optional[Plan] = None, error: Optional[Exception] = None):
        self.plan = plan or make_plan()
        self.error = error
        self.calls: List[str] = []

    async def generate_plan(self, topic: str) -> Plan:
        self.calls.append(topic)
        if self.error is not None:
            raise self.error
        return self.plan


class FakeVisuals(IVisualGenerator):
    """Returns a visual per call; steps in `fail_steps` always yield None."""

    def __init__(self, fail_steps: Optional[Set[int]] = None, duration: float = 3.0):
        self.fail_steps = fail_steps or set()
        self.duration = duration
        self.calls: List[int] = []

    async def generate_visual(self, step: PlanStep, topic: str) -> Optional[VisualArtifact]:
        self.calls.append(step.id)
        await asyncio.sleep(0)
        if step.id in self.fail_steps:
            return None
        return make_visual(self.duration)


class TimedVisuals(IVisualGenerator):
    """Holds every call for `hold` seconds and records per-step start times
    and the peak number of steps with calls in flight."""

    def __init__(self, hold: float = 0.1):
        self.hold = hold
        self.started: Dict[int, float] = {}
        self.active: Dict[int, int] = {}
        self.peak_steps = 0

    async def generate_visual(self, step: PlanStep, topic: str) -> Optional[VisualArtifact]:
        self.started.setdefault(step.id, time.monotonic())
        self.active[step.id] = self.active.get(step.id, 0) + 1
        self.peak_steps = max(self.peak_steps, len(self.active))
        try:
            await asyncio.sleep(self.hold)
        finally:
            self.active[step.id] -= 1
            if not self.active[step.id]:
                del self.active[step.id]
        return make_visual()


class FakeNotes(INotesGenerator):
    def __init__(self, fail_steps: Optional[Set[int]] = None):
        self.fail_steps = fail_steps or set()
        self.calls: List[int] = []

    async def generate_notes(self, step: PlanStep, topic: str, subtopic: str) -> Optional[NotesDocument]:
        self.calls.append(step.id)
        if step.id in self.fail_steps:
            raise AIGenerationError(f"notes failed for step {step.id}")
        return NotesDocument(svgCode="<svg>notes</svg>", description=f"Notes for {subtopic}")


class FakeNarration(INarrationGenerator):
    def __init__(self, error: Optional[Exception] = None, duration: float = 30.0):
        self.error = error
        self.duration = duration
        self.calls: List[List[VisualDescriptor]] = []

    async def generate_narration(
        self, step: PlanStep, topic: str, visuals: List[VisualDescriptor], session_id: str
    ) -> NarrationBundle:
        self.calls.append(visuals)
        if self.error is not None:
            raise self.error
        entries = [
            NarrationEntry(
                visualNumber=v.visual_number,
                type=v.type,
                text=f"Narration for visual {v.visual_number}",
                duration=self.duration,
            )
            for v in visuals
        ]
        return NarrationBundle(narrations=entries, totalDuration=sum(e.duration for e in entries))


def make_collaborators(**overrides) -> GenerationCollaborators:
    parts = dict(
        planner=FakePlanner(),
        visuals=FakeVisuals(),
        notes=FakeNotes(),
        narration=FakeNarration(),
        validator=CompilerRouter(),
    )
    parts.update(overrides)
    return GenerationCollaborators(**parts)


def make_settings(cache_dir: str, **playback) -> Settings:
    return Settings(
        queue=QueueConfig(
            plan_concurrency=1,
            generation_concurrency=2,
            attempts=2,
            backoff_base=0.01,
            backoff_max=0.05,
            keep_completed_seconds=3600,
            keep_completed_count=1000,
            keep_failed_seconds=86400,
        ),
        generation=GenerationConfig(
            visuals_per_step=4,
            stagger_delay=0.0,
            visual_attempts=1,
            visual_backoff_base=0.01,
            ai_timeout_seconds=5,
            temperature=0.7,
            enable_notes=True,
            enable_narration=True,
            enable_audio=False,
            buffer_simple=0.01,
            buffer_complex=0.02,
            breaker_failure_threshold=3,
            breaker_reset_timeout=10,
        ),
        cache=CacheConfig(directory=cache_dir, ttl_seconds=0, size_limit_mb=64),
        playback=PlaybackConfig(
            tts_enabled=playback.get('tts_enabled', True),
            inter_visual_delay_ms=playback.get('inter_visual_delay_ms', 2000),
            wait_for_narration=True,
            wait_for_animation=True,
            replay_on_join=playback.get('replay_on_join', False),
            subscriber_queue_size=1000,
        ),
        logging=LogConfig(level="WARNING", format="text", enable_performance_logging=False),
    )


class OrchestratorHarness:
    """Temp-dir backed orchestrator wired to fake collaborators."""

    def __init__(self, collaborators: Optional[GenerationCollaborators] = None, **playback):
        self.tmp = tempfile.TemporaryDirectory()
        self.settings = make_settings(self.tmp.name, **playback)
        self.disk = diskcache.Cache(self.tmp.name)
        self.cache = CacheStore(self.disk)
        self.sessions = SessionStore(self.disk)
        self.channel = DeliveryChannel()
        self.collaborators = collaborators or make_collaborators()
        self.orchestrator = LectureOrchestrator(
            cache=self.cache,
            sessions=self.sessions,
            channel=self.channel,
            collaborators=self.collaborators,
            settings=self.settings,
        )

    async def run_query(self, query: str, session_id: str = "s1") -> str:
        await self.orchestrator.submit_query(query, session_id=session_id)
        await self.settle()
        return session_id

    async def settle(self, timeout: float = 5.0) -> None:
        await self.orchestrator.plan_queue.drain(timeout)
        await self.orchestrator.parallel_queue.drain(timeout)

    async def close(self) -> None:
        await self.orchestrator.close()
        self.disk.close()
        self.tmp.cleanup()


def drain_events(subscriber: Subscriber) -> List[Dict[str, Any]]:
    events = []
    while not subscriber.queue.empty():
        events.append(subscriber.queue.get_nowait())
    return events


def events_named(events: List[Dict[str, Any]], name: str) -> List[Dict[str, Any]]:
    return [e for e in events if e["event"] == name]
