from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CompilerType = Literal["js", "latex", "wasm-py"]


class PlanStep(BaseModel):
    id: int = Field(ge=0, description="Dense step index, matches position in Plan.steps.")
    desc: str = Field(description="What this step teaches.")
    compiler: str = Field(default="js", description="Compiler kind used to validate generated output.", examples=["js", "latex", "wasm-py"])
    complexity: int = Field(default=2, ge=1, le=10, description="Relative difficulty, drives legacy pacing buffer.")
    tag: Optional[str] = Field(None, description="Semantic tag, e.g. 'intro' or 'rc_curve'.")


class StepSummary(BaseModel):
    """Sanitized step view sent with the plan event"""
    id: int
    tag: Optional[str] = None
    desc: str


class Plan(BaseModel):
    title: str = Field(description="Lecture title.")
    subtitle: Optional[str] = Field(None, description="One-line subtitle.")
    toc: List[Any] = Field(default_factory=list, description="Table of contents entries.")
    steps: List[PlanStep] = Field(description="Ordered lecture steps.")

    def reindexed(self) -> "Plan":
        """Copy with step ids rewritten to 0..N-1 in list order."""
        steps = [step.model_copy(update={"id": i}) for i, step in enumerate(self.steps)]
        return self.model_copy(update={"steps": steps})

    def summaries(self) -> List[StepSummary]:
        return [StepSummary(id=s.id, tag=s.tag, desc=s.desc) for s in self.steps]

    def header(self) -> "PlanHeader":
        return PlanHeader(title=self.title, subtitle=self.subtitle, toc=self.toc)


class PlanHeader(BaseModel):
    title: str
    subtitle: Optional[str] = None
    toc: List[Any] = Field(default_factory=list)


class Action(BaseModel):
    """One renderable operation; op-specific fields are kept as extras."""
    model_config = ConfigDict(extra="allow")

    op: str = Field(description="Operation name, e.g. 'customSVG', 'drawLabel', 'delay', 'clear'.")
    visualGroup: Optional[str] = Field(None, description="Correlation id of the artifact this action belongs to.")
    priority: Optional[int] = Field(None, ge=1, description="Position within the step batch; notes are 1.")
    isNotesKeynote: bool = Field(False, description="True only for the notes artifact.")


class VisualArtifact(BaseModel):
    """Output of one visual generation call"""
    actions: List[Action] = Field(description="Actions making up the animation.")
    description: Optional[str] = Field(None, description="Short description used to write narration.")
    animationDuration: Optional[float] = Field(None, ge=0, description="Seconds the animation takes to play.")


class NotesDocument(BaseModel):
    """Output of the notes generation call"""
    svgCode: str = Field(description="Keynote-style notes rendered as SVG markup.")
    description: Optional[str] = None


class NarrationEntry(BaseModel):
    visualNumber: int = Field(ge=0, description="0 for notes, 1..N for animations.")
    type: Literal["notes", "animation"]
    text: str
    duration: float = Field(ge=0, description="Seconds.")
    audio: Optional[str] = Field(None, description="Base64 encoded audio, when synthesized.")


class NarrationBundle(BaseModel):
    narrations: List[NarrationEntry] = Field(default_factory=list)
    totalDuration: float = 0.0
    hasAudio: bool = False
    totalAudioSize: int = 0

    def for_visual(self, visual_number: int) -> Optional[NarrationEntry]:
        for entry in self.narrations:
            if entry.visualNumber == visual_number:
                return entry
        return None


class TTSConfig(BaseModel):
    """Delivery descriptor telling the viewer how to pace visuals"""
    enabled: bool = True
    interVisualDelay: int = Field(2000, ge=0, description="Milliseconds of pause after each visual.")
    waitForNarration: bool = True
    waitForAnimation: bool = True


class ActionBatch(BaseModel):
    """Assembled, priority-ordered output for one step (a 'chunk')"""
    type: Literal["actions"] = "actions"
    stepId: int
    actions: List[Action]
    transcript: str = ""
    narration: Optional[NarrationBundle] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
