"""
OpenAI-backed generation collaborators: planner, visuals, notes and narration.
"""

import base64
import math
from typing import List, Optional

from pydantic import BaseModel, Field

from lecturecast import config
from lecturecast.agents.ai.clients import get_client, get_raw_client, invoke, synthesize_speech
from lecturecast.agents.core.interfaces import (
    GenerationCollaborators, INarrationGenerator, INotesGenerator, IPlanGenerator,
    IVisualGenerator, VisualDescriptor
)
from lecturecast.agents.generation.compiler_router import CompilerRouter
from lecturecast.agents.generation.exceptions import AIInvalidResponseError, is_retryable
from lecturecast.agents.generation.retry_policy import RetryPolicy
from lecturecast.config import GenerationConfig
from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import (
    Action, NarrationBundle, NarrationEntry, NotesDocument, Plan, PlanStep, VisualArtifact
)

logger = get_logger(__name__)

WORDS_PER_MINUTE = 150
MIN_NARRATION_SECONDS = 30
MAX_NARRATION_SECONDS = 120


def estimate_duration(text: str) -> float:
    """Speaking time for text at 150 wpm, clamped to 30-120 seconds."""
    words = len(text.split())
    seconds = words * 60 / WORDS_PER_MINUTE
    return float(max(MIN_NARRATION_SECONDS, min(MAX_NARRATION_SECONDS, math.ceil(seconds))))


# ============= Response models =============

class StepDraft(BaseModel):
    desc: str = Field(description="What this step explains, one or two sentences.")
    tag: str = Field(description="Short snake_case tag for the step.")
    compiler: str = Field("js", description="'js' for canvas visuals, 'latex' for equations, 'wasm-py' for numeric simulations.")
    complexity: int = Field(2, ge=1, le=10)


class PlanDraft(BaseModel):
    title: str
    subtitle: str
    toc: List[str] = Field(description="Table of contents, one entry per section.")
    steps: List[StepDraft] = Field(min_length=1)


class VisualDraft(BaseModel):
    svgCode: str = Field(description="Complete animated SVG document.")
    description: str = Field(description="One sentence saying what the animation shows.")
    animationDuration: float = Field(8.0, ge=0, le=120, description="Seconds the animation runs.")


class NotesDraft(BaseModel):
    svgCode: str = Field(description="Keynote-style notes as a static SVG document.")
    description: str


class NarrationLine(BaseModel):
    visualNumber: int
    text: str


class NarrationDraft(BaseModel):
    narrations: List[NarrationLine]


# ============= Prompts =============

PLANNER_SYSTEM = (
    "You are a world-class educator. Break the topic down to first principles and "
    "produce a step-by-step lecture plan, like a lecturer writing on a blackboard. "
    "Each step builds on the previous one, from introduction to conclusion."
)

VISUAL_SYSTEM = (
    "You create a single self-contained animated SVG (viewBox 0 0 800 600) that teaches one idea. "
    "Use SMIL or CSS animation, transparent background, readable labels, no external resources."
)

NOTES_SYSTEM = (
    "You write keynote-style lecture notes as a static SVG (viewBox 0 0 800 600): a heading, "
    "three to six concise points, and key formulas where relevant."
)

NARRATION_SYSTEM = (
    "You are the lecturer. Write what you would say aloud while each visual is on screen. "
    "Return one narration per visual number you are given, conversational and precise."
)


def _messages(system: str, user: str):
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


# ============= Collaborators =============

class OpenAIPlanGenerator(IPlanGenerator):
    def __init__(self, client=None, model: str = config.PLANNER_MODEL, settings: Optional[GenerationConfig] = None):
        self.client = client or get_client()
        self.model = model
        self.settings = settings or GenerationConfig()

    async def generate_plan(self, topic: str) -> Plan:
        draft = await invoke(
            self.client,
            self.model,
            _messages(PLANNER_SYSTEM, f"Topic: {topic}"),
            PlanDraft,
            temperature=self.settings.temperature,
            timeout=self.settings.ai_timeout_seconds,
        )
        steps = [
            PlanStep(id=i, desc=s.desc, tag=s.tag, compiler=s.compiler, complexity=s.complexity)
            for i, s in enumerate(draft.steps)
        ]
        logger.info(f"[PLANNER] '{draft.title}' with {len(steps)} steps")
        return Plan(title=draft.title, subtitle=draft.subtitle, toc=draft.toc, steps=steps)


class OpenAIVisualGenerator(IVisualGenerator):
    """Owns retries for visual calls; exhaustion is reported as None."""

    def __init__(
        self,
        client=None,
        model: str = config.VISUAL_MODEL,
        settings: Optional[GenerationConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client or get_client()
        self.model = model
        self.settings = settings or GenerationConfig()
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=self.settings.visual_attempts,
            base_delay=self.settings.visual_backoff_base,
            max_delay=120.0,
            jitter=0.2,
            retry_on=is_retryable,
        )

    async def _generate_once(self, step: PlanStep, topic: str) -> VisualArtifact:
        draft = await invoke(
            self.client,
            self.model,
            _messages(VISUAL_SYSTEM, f"Lecture: {topic}\nStep: {step.desc}\nCompiler: {step.compiler}"),
            VisualDraft,
            temperature=self.settings.temperature,
            timeout=self.settings.ai_timeout_seconds,
        )
        if "<svg" not in draft.svgCode:
            raise AIInvalidResponseError("Visual response contained no SVG", context={'step_id': step.id})
        return VisualArtifact(
            actions=[Action(op='customSVG', svgCode=draft.svgCode)],
            description=draft.description,
            animationDuration=draft.animationDuration,
        )

    async def generate_visual(self, step: PlanStep, topic: str) -> Optional[VisualArtifact]:
        return await self.retry_policy.run_or_none(
            lambda: self._generate_once(step, topic),
            label=f"visual for step {step.id}",
        )


class OpenAINotesGenerator(INotesGenerator):
    def __init__(self, client=None, model: str = config.NOTES_MODEL, settings: Optional[GenerationConfig] = None):
        self.client = client or get_client()
        self.model = model
        self.settings = settings or GenerationConfig()

    async def generate_notes(self, step: PlanStep, topic: str, subtopic: str) -> Optional[NotesDocument]:
        draft = await invoke(
            self.client,
            self.model,
            _messages(NOTES_SYSTEM, f"Lecture: {topic}\nSubtopic: {subtopic}"),
            NotesDraft,
            temperature=self.settings.temperature,
            timeout=self.settings.ai_timeout_seconds,
        )
        if "<svg" not in draft.svgCode:
            logger.warning(f"[NOTES] Step {step.id} notes had no SVG")
            return None
        return NotesDocument(svgCode=draft.svgCode, description=draft.description)


class OpenAINarrationGenerator(INarrationGenerator):
    """One call per step covering every visual; optional speech audio."""

    def __init__(
        self,
        client=None,
        raw_client=None,
        model: str = config.NARRATION_MODEL,
        settings: Optional[GenerationConfig] = None,
    ):
        self.client = client or get_client()
        self.settings = settings or GenerationConfig()
        self.raw_client = raw_client if raw_client is not None else (get_raw_client() if self.settings.enable_audio else None)
        self.model = model

    async def generate_narration(
        self,
        step: PlanStep,
        topic: str,
        visuals: List[VisualDescriptor],
        session_id: str
    ) -> NarrationBundle:
        listing = "\n".join(f"{v.visual_number}. [{v.type}] {v.description}" for v in visuals)
        draft = await invoke(
            self.client,
            self.model,
            _messages(NARRATION_SYSTEM, f"Lecture: {topic}\nStep: {step.desc}\nVisuals:\n{listing}"),
            NarrationDraft,
            temperature=self.settings.temperature,
            timeout=self.settings.ai_timeout_seconds,
        )

        texts = {line.visualNumber: line.text.strip() for line in draft.narrations if line.text.strip()}
        entries: List[NarrationEntry] = []
        total_audio = 0
        for visual in visuals:
            text = texts.get(visual.visual_number)
            if not text:
                continue
            audio = None
            if self.raw_client is not None:
                audio_bytes = await synthesize_speech(self.raw_client, config.TTS_MODEL, config.TTS_VOICE, text)
                total_audio += len(audio_bytes)
                audio = base64.b64encode(audio_bytes).decode("ascii")
            entries.append(NarrationEntry(
                visualNumber=visual.visual_number,
                type=visual.type,
                text=text,
                duration=estimate_duration(text),
                audio=audio,
            ))

        logger.info(f"[NARRATION] Session {session_id} step {step.id}: {len(entries)}/{len(visuals)} narrations")
        return NarrationBundle(
            narrations=entries,
            totalDuration=sum(e.duration for e in entries),
            hasAudio=total_audio > 0,
            totalAudioSize=total_audio,
        )


def build_default_collaborators(settings: Optional[GenerationConfig] = None) -> GenerationCollaborators:
    settings = settings or GenerationConfig()
    client = get_client()
    return GenerationCollaborators(
        planner=OpenAIPlanGenerator(client, settings=settings),
        visuals=OpenAIVisualGenerator(client, settings=settings),
        notes=OpenAINotesGenerator(client, settings=settings),
        narration=OpenAINarrationGenerator(client, settings=settings),
        validator=CompilerRouter(),
    )
