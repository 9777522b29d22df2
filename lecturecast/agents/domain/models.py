"""
Domain models representing generation work and job bookkeeping.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from lecturecast.models.lecture import Plan, PlanStep

T = TypeVar("T")


class JobStatus(str, Enum):
    """Work queue job status."""
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class LegacyMode(str, Enum):
    """What a sequential-generation job does with its step."""
    PREFETCH = "prefetch"
    EMIT = "emit"


@dataclass
class PlanJob:
    query: str
    session_id: str


@dataclass
class ParallelGenerationJob:
    plan: Plan
    session_id: str
    query: str


@dataclass
class SequentialGenerationJob:
    step: PlanStep
    session_id: str
    plan: Plan
    query: str
    mode: LegacyMode = LegacyMode.EMIT


@dataclass
class GenerationTask:
    """One step's fan-out work item"""
    session_id: str
    step: PlanStep
    topic: str
    plan: Plan

    @property
    def total_steps(self) -> int:
        return len(self.plan.steps)


@dataclass
class Job(Generic[T]):
    """A queued unit of work and its lifecycle bookkeeping"""
    id: str
    name: str
    data: T
    status: JobStatus = JobStatus.WAITING
    attempts_made: int = 0
    created_at: float = field(default_factory=time.time)
    ready_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status.value,
            'attempts_made': self.attempts_made,
            'created_at': self.created_at,
            'finished_at': self.finished_at,
            'error': self.error,
        }
