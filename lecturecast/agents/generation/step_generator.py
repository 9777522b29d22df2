"""
Per-step fan-out: notes and N visuals in parallel, then one narration call.

Each sub-call is isolated. A visual that raises or returns None is dropped and
the rest of the step carries on. The step only fails when neither notes nor any
animation came back.
"""

import asyncio
from typing import List, Optional, Tuple

from lecturecast.agents.core.interfaces import GenerationCollaborators, VisualDescriptor
from lecturecast.agents.domain.models import GenerationTask
from lecturecast.agents.generation.exceptions import StepGenerationError
from lecturecast.logging_config import get_logger, log_performance
from lecturecast.models.lecture import (
    Action, ActionBatch, NarrationBundle, NotesDocument, PlanStep, VisualArtifact
)

logger = get_logger(__name__)

NOTES_PRIORITY = 1


def notes_group(step_id: int) -> str:
    return f"step-{step_id}-notes"


def visual_group(step_id: int, visual_number: int) -> str:
    return f"step-{step_id}-visual-{visual_number}"


def assemble_batch(
    step: PlanStep,
    notes: Optional[NotesDocument],
    visuals: List[VisualArtifact],
    narration: Optional[NarrationBundle] = None,
) -> ActionBatch:
    """Order artifacts: notes at priority 1, then every animation action at 2, 3, ..."""
    actions: List[Action] = []
    if notes is not None:
        actions.append(Action(
            op='customSVG',
            svgCode=notes.svgCode,
            visualGroup=notes_group(step.id),
            visualNumber=0,
            priority=NOTES_PRIORITY,
            isNotesKeynote=True,
        ))

    priority = NOTES_PRIORITY
    for number, visual in enumerate(visuals, start=1):
        for action in visual.actions:
            priority += 1
            update = {
                'visualGroup': visual_group(step.id, number),
                'visualNumber': number,
                'priority': priority,
                'isNotesKeynote': False,
            }
            if visual.animationDuration is not None and getattr(action, 'animationDuration', None) is None:
                update['animationDuration'] = visual.animationDuration
            actions.append(action.model_copy(update=update))

    transcript = ""
    if narration is not None:
        transcript = " ".join(entry.text for entry in narration.narrations if entry.text)

    return ActionBatch(
        stepId=step.id,
        actions=actions,
        transcript=transcript,
        narration=narration,
        meta={
            'visualCount': len(visuals),
            'hasNotes': notes is not None,
            'hasNarration': narration is not None,
            'transcriptLength': len(transcript),
        },
    )


class StepGenerator:
    """Runs the notes/visual/narration fan-out for one GenerationTask."""

    def __init__(
        self,
        collaborators: GenerationCollaborators,
        visuals_per_step: int = 4,
        enable_notes: bool = True,
        enable_narration: bool = True,
    ):
        self.collaborators = collaborators
        self.visuals_per_step = visuals_per_step
        self.enable_notes = enable_notes
        self.enable_narration = enable_narration

    async def _notes(self, task: GenerationTask) -> Optional[NotesDocument]:
        if not self.enable_notes:
            return None
        return await self.collaborators.notes.generate_notes(task.step, task.topic, task.step.desc)

    async def _visual(self, task: GenerationTask) -> Optional[VisualArtifact]:
        return await self.collaborators.visuals.generate_visual(task.step, task.topic)

    async def _collect(self, task: GenerationTask) -> Tuple[Optional[NotesDocument], List[VisualArtifact]]:
        results = await asyncio.gather(
            self._notes(task),
            *[self._visual(task) for _ in range(self.visuals_per_step)],
            return_exceptions=True,
        )

        notes = results[0]
        if isinstance(notes, BaseException):
            logger.warning(f"[STEP {task.step.id}] Notes generation failed: {notes}")
            notes = None

        visuals: List[VisualArtifact] = []
        for index, result in enumerate(results[1:], start=1):
            if isinstance(result, BaseException):
                logger.warning(f"[STEP {task.step.id}] Visual {index} failed: {result}")
            elif result is None:
                logger.warning(f"[STEP {task.step.id}] Visual {index} returned nothing")
            elif not result.actions:
                logger.warning(f"[STEP {task.step.id}] Visual {index} had no actions")
            else:
                visuals.append(result)
        return notes, visuals

    async def _narrate(
        self,
        task: GenerationTask,
        notes: Optional[NotesDocument],
        visuals: List[VisualArtifact],
    ) -> Optional[NarrationBundle]:
        if not self.enable_narration:
            return None

        descriptors: List[VisualDescriptor] = []
        if notes is not None:
            descriptors.append(VisualDescriptor(
                visual_number=0,
                type='notes',
                description=notes.description or task.step.desc,
            ))
        for number, visual in enumerate(visuals, start=1):
            descriptors.append(VisualDescriptor(
                visual_number=number,
                type='animation',
                description=visual.description or f"Animation {number} for {task.step.desc}",
                animation_duration=visual.animationDuration,
            ))

        try:
            return await self.collaborators.narration.generate_narration(
                task.step, task.topic, descriptors, task.session_id
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[STEP {task.step.id}] Narration failed, continuing without it: {e}")
            return None

    @log_performance("step_generation")
    async def generate(self, task: GenerationTask) -> ActionBatch:
        notes, visuals = await self._collect(task)
        if notes is None and not visuals:
            raise StepGenerationError(
                task.step.id,
                f"No notes or animations generated for step {task.step.id}",
                context={'session_id': task.session_id, 'requested_visuals': self.visuals_per_step},
            )

        logger.info(
            f"[STEP {task.step.id}] {len(visuals)}/{self.visuals_per_step} visuals, "
            f"notes={'yes' if notes else 'no'}"
        )
        narration = await self._narrate(task, notes, visuals)
        return assemble_batch(task.step, notes, visuals, narration)
