"""
Viewer-side consumer of the delivery channel.

Takes raw envelopes (as received over the WebSocket), drops the ones meant for
other sessions, and turns each `rendered` batch into per-visual sections on
the animation queue, each paired with its narration entry.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from lecturecast.agents.generation.exceptions import EventValidationError
from lecturecast.client.animation_queue import AnimationQueue, SectionContext
from lecturecast.logging_config import get_logger
from lecturecast.models.events import PlanPayload, RenderedPayload, validate_event
from lecturecast.models.lecture import Action, TTSConfig

logger = get_logger(__name__)


class LectureViewer:
    def __init__(
        self,
        session_id: str,
        queue: AnimationQueue,
        autoplay: bool = True,
        on_event: Optional[Callable[[str, Any], None]] = None,
    ):
        self.session_id = session_id
        self.queue = queue
        self.autoplay = autoplay
        self.on_event = on_event
        self.plan: Optional[PlanPayload] = None
        self.received_steps: List[int] = []
        self.failed_steps: List[int] = []
        self.ignored = 0

    def join_message(self) -> Dict[str, Any]:
        return {"event": "join", "data": {"sessionId": self.session_id}}

    def handle(self, raw: Dict[str, Any]) -> bool:
        """Process one envelope; returns False when it was dropped."""
        try:
            envelope = validate_event(raw)
        except EventValidationError as e:
            logger.warning(f"[VIEWER] Dropping malformed envelope: {e}")
            self.ignored += 1
            return False

        if envelope.targetSession is not None and envelope.targetSession != self.session_id:
            self.ignored += 1
            return False

        if envelope.event == "plan":
            self.plan = envelope.data
            logger.info(f"[VIEWER] Plan received: {self.plan.title} ({len(self.plan.steps)} steps)")
        elif envelope.event == "rendered":
            self._on_rendered(envelope.data)

        if self.on_event:
            self.on_event(envelope.event, envelope.data)
        return True

    def _on_rendered(self, payload: RenderedPayload) -> None:
        if payload.type == "error":
            logger.warning(f"[VIEWER] Step {payload.stepId} failed: {payload.error or payload.message}")
            self.failed_steps.append(payload.stepId)
            return

        tts = payload.ttsConfig or TTSConfig()
        added = 0
        for group, actions in self._groups(payload.actions).items():
            lead = actions[0]
            visual_number = getattr(lead, "visualNumber", None)
            narration = None
            if payload.narration is not None and visual_number is not None:
                narration = payload.narration.for_visual(visual_number)
            section = SectionContext(
                step_id=payload.stepId,
                visual_group=group,
                narration=narration,
                tts=tts,
                animation_duration=float(getattr(lead, "animationDuration", None) or 0.0),
                meta=payload.meta,
            )
            added += self.queue.enqueue(actions, section)

        self.received_steps.append(payload.stepId)
        logger.info(f"[VIEWER] Step {payload.stepId} queued ({added} actions)")
        if self.autoplay and added:
            self.queue.play()

    @staticmethod
    def _groups(actions: List[Action]) -> "OrderedDict[Optional[str], List[Action]]":
        ordered = sorted(actions, key=lambda a: a.priority if a.priority is not None else float("inf"))
        groups: "OrderedDict[Optional[str], List[Action]]" = OrderedDict()
        for action in ordered:
            groups.setdefault(action.visualGroup, []).append(action)
        return groups
