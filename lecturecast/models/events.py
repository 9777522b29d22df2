"""
Delivery channel event catalogue.

Every event name maps to exactly one payload model. Envelopes are validated
through `validate_event` before they reach any subscriber.
"""

import time
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from lecturecast.agents.generation.exceptions import EventValidationError
from lecturecast.models.lecture import (
    Action, NarrationBundle, PlanHeader, PlanStep, StepSummary, TTSConfig
)


# ============= Payloads =============

class JoinPayload(BaseModel):
    sessionId: str = Field(min_length=1)


class JoinedPayload(BaseModel):
    sessionId: str


class PlanPayload(BaseModel):
    title: str
    subtitle: Optional[str] = None
    toc: List[Any] = Field(default_factory=list)
    steps: List[StepSummary]


class StatusPayload(BaseModel):
    """Summary fields vary by status type"""
    model_config = ConfigDict(extra="allow")

    type: str
    message: Optional[str] = None


class ProgressPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    stepId: int
    status: Literal["generating", "ready", "error", "cached"]
    message: Optional[str] = None


class GenerationProgressPayload(BaseModel):
    phase: Literal["starting", "generating", "complete"]
    totalSteps: int
    completedSteps: int = 0
    progress: int = Field(0, ge=0, le=100)
    message: Optional[str] = None


class RenderedPayload(BaseModel):
    type: Literal["actions", "error"]
    stepId: int
    step: Optional[PlanStep] = None
    actions: List[Action] = Field(default_factory=list)
    transcript: Optional[str] = None
    narration: Optional[NarrationBundle] = None
    plan: Optional[PlanHeader] = None
    totalSteps: Optional[int] = None
    ttsConfig: Optional[TTSConfig] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    error: Optional[str] = None


# ============= Envelopes =============

class _Envelope(BaseModel):
    sessionId: Optional[str] = None
    targetSession: Optional[str] = Field(None, description="Set on fallback broadcasts; clients drop events for other sessions.")
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))


class JoinEvent(_Envelope):
    event: Literal["join"] = "join"
    data: JoinPayload


class JoinedEvent(_Envelope):
    event: Literal["joined"] = "joined"
    data: JoinedPayload


class PlanEvent(_Envelope):
    event: Literal["plan"] = "plan"
    data: PlanPayload


class StatusEvent(_Envelope):
    event: Literal["status"] = "status"
    data: StatusPayload


class ProgressEvent(_Envelope):
    event: Literal["progress"] = "progress"
    data: ProgressPayload


class GenerationProgressEvent(_Envelope):
    event: Literal["generation_progress"] = "generation_progress"
    data: GenerationProgressPayload


class RenderedEvent(_Envelope):
    event: Literal["rendered"] = "rendered"
    data: RenderedPayload


ChannelEvent = Annotated[
    Union[
        JoinEvent, JoinedEvent, PlanEvent, StatusEvent,
        ProgressEvent, GenerationProgressEvent, RenderedEvent,
    ],
    Field(discriminator="event"),
]

EVENT_NAMES = ("join", "joined", "plan", "status", "progress", "generation_progress", "rendered")

_adapter: TypeAdapter = TypeAdapter(ChannelEvent)


def validate_event(raw: Dict[str, Any]) -> ChannelEvent:
    """Validate a raw envelope dict, raising EventValidationError on mismatch."""
    event_name = str((raw or {}).get("event"))
    if event_name not in EVENT_NAMES:
        raise EventValidationError(event_name, f"Unknown event type: {event_name}")
    try:
        return _adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise EventValidationError(event_name, f"Invalid {event_name} payload", cause=e) from e


def build_event(event: str, payload: Any, session_id: Optional[str] = None) -> ChannelEvent:
    """Wrap a payload (model or dict) in its envelope and validate it."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_none=True)
    return validate_event({"event": event, "sessionId": session_id, "data": payload})
