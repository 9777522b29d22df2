"""
Interfaces for the external generation collaborators.

Design principles:
- Single responsibility
- Small, focused interfaces
- Soft failures are signalled by returning None, hard failures by raising
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from lecturecast.models.lecture import (
    ActionBatch, NarrationBundle, NotesDocument, Plan, PlanStep, VisualArtifact
)


@dataclass
class VisualDescriptor:
    """What the narration writer is told about one surviving visual"""
    visual_number: int  # 0 = notes, 1..N = animations
    type: str  # 'notes' | 'animation'
    description: str
    animation_duration: Optional[float] = None


class IPlanGenerator(ABC):
    """Turns a topic into a lecture plan"""

    @abstractmethod
    async def generate_plan(self, topic: str) -> Plan:
        """Raise on failure; callers do not expect internal retries."""
        pass


class IVisualGenerator(ABC):
    """Produces one animation for a step"""

    @abstractmethod
    async def generate_visual(self, step: PlanStep, topic: str) -> Optional[VisualArtifact]:
        """Return None once internal retries are exhausted."""
        pass


class INotesGenerator(ABC):
    """Produces the keynote-style notes artifact for a step"""

    @abstractmethod
    async def generate_notes(self, step: PlanStep, topic: str, subtopic: str) -> Optional[NotesDocument]:
        pass


class INarrationGenerator(ABC):
    """Writes (and optionally voices) narration for a step's visuals"""

    @abstractmethod
    async def generate_narration(
        self,
        step: PlanStep,
        topic: str,
        visuals: List[VisualDescriptor],
        session_id: str
    ) -> NarrationBundle:
        pass


class IChunkValidator(ABC):
    """Routes generated output through its compiler kind"""

    @abstractmethod
    def validate(self, artifact: ActionBatch, compiler: str) -> ActionBatch:
        """Raise UnknownCompilerError or ChunkValidationError."""
        pass


@dataclass
class GenerationCollaborators:
    """Everything the orchestrator calls out to"""
    planner: IPlanGenerator
    visuals: IVisualGenerator
    notes: INotesGenerator
    narration: INarrationGenerator
    validator: IChunkValidator
