"""
Tests for agents/generation/step_generator.py and compiler_router.py

Covers per-step fan-out isolation and priority assembly.
"""
import unittest

from lecturecast.agents.core.interfaces import IVisualGenerator
from lecturecast.agents.domain.models import GenerationTask
from lecturecast.agents.generation.compiler_router import CompilerRouter
from lecturecast.agents.generation.exceptions import (
    AIGenerationError, ChunkValidationError, StepGenerationError, UnknownCompilerError
)
from lecturecast.agents.generation.step_generator import StepGenerator, assemble_batch
from lecturecast.models.lecture import Action, ActionBatch, NotesDocument, VisualArtifact
from tests.helpers import FakeNarration, FakeNotes, make_collaborators, make_plan, make_visual


class ScriptedVisuals(IVisualGenerator):
    """Returns results from a script in call order."""

    def __init__(self, results):
        self.results = list(results)

    async def generate_visual(self, step, topic):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def make_task(step_index: int = 0) -> GenerationTask:
    plan = make_plan(3)
    return GenerationTask(session_id="s1", step=plan.steps[step_index], topic="Intro to X", plan=plan)


class TestAssembleBatch(unittest.TestCase):

    def test_notes_first_then_increasing_priorities(self):
        plan = make_plan(1)
        two_action_visual = VisualArtifact(
            actions=[Action(op="drawTitle", text="Hi"), Action(op="drawCircle")],
            animationDuration=4.0,
        )
        batch = assemble_batch(
            plan.steps[0],
            NotesDocument(svgCode="<svg/>"),
            [make_visual(), two_action_visual],
        )

        self.assertTrue(batch.actions[0].isNotesKeynote)
        self.assertEqual([a.priority for a in batch.actions], [1, 2, 3, 4])
        self.assertEqual(
            [a.visualGroup for a in batch.actions],
            ["step-0-notes", "step-0-visual-1", "step-0-visual-2", "step-0-visual-2"],
        )
        self.assertEqual(batch.actions[3].animationDuration, 4.0)
        self.assertEqual(batch.meta["visualCount"], 2)

    def test_without_notes_animations_start_at_two(self):
        batch = assemble_batch(make_plan(1).steps[0], None, [make_visual()])
        self.assertFalse(batch.actions[0].isNotesKeynote)
        self.assertEqual(batch.actions[0].priority, 2)
        self.assertFalse(batch.meta["hasNotes"])


class TestStepGenerator(unittest.IsolatedAsyncioTestCase):

    async def test_absent_visual_is_filtered(self):
        visuals = ScriptedVisuals([make_visual(), make_visual(), None, make_visual()])
        generator = StepGenerator(make_collaborators(visuals=visuals), visuals_per_step=4)

        batch = await generator.generate(make_task())

        self.assertEqual([a.priority for a in batch.actions], [1, 2, 3, 4])
        self.assertEqual(batch.meta["visualCount"], 3)
        self.assertEqual(len(batch.narration.narrations), 4)

    async def test_raising_visual_is_isolated(self):
        visuals = ScriptedVisuals([AIGenerationError("boom"), make_visual()])
        generator = StepGenerator(make_collaborators(visuals=visuals), visuals_per_step=2)

        batch = await generator.generate(make_task())

        self.assertEqual(batch.meta["visualCount"], 1)

    async def test_everything_failing_raises_step_error(self):
        visuals = ScriptedVisuals([None] * 4)
        generator = StepGenerator(make_collaborators(visuals=visuals, notes=FakeNotes(fail_steps={0})))

        with self.assertRaises(StepGenerationError) as ctx:
            await generator.generate(make_task())
        self.assertEqual(ctx.exception.step_id, 0)

    async def test_notes_only_step_still_succeeds(self):
        visuals = ScriptedVisuals([None] * 4)
        generator = StepGenerator(make_collaborators(visuals=visuals))

        batch = await generator.generate(make_task())

        self.assertEqual(len(batch.actions), 1)
        self.assertTrue(batch.actions[0].isNotesKeynote)

    async def test_narration_failure_leaves_narration_absent(self):
        visuals = ScriptedVisuals([make_visual()] * 5)
        generator = StepGenerator(
            make_collaborators(visuals=visuals, narration=FakeNarration(error=AIGenerationError("down"))),
            visuals_per_step=5,
        )

        batch = await generator.generate(make_task())

        self.assertIsNone(batch.narration)
        self.assertEqual(batch.transcript, "")
        self.assertEqual(batch.meta["visualCount"], 5)

    async def test_narration_is_told_about_surviving_visuals_only(self):
        narration = FakeNarration()
        visuals = ScriptedVisuals([make_visual(), None])
        generator = StepGenerator(make_collaborators(visuals=visuals, narration=narration), visuals_per_step=2)

        await generator.generate(make_task())

        descriptors = narration.calls[0]
        self.assertEqual([(d.visual_number, d.type) for d in descriptors], [(0, "notes"), (1, "animation")])

    async def test_disabled_narration_skips_the_call(self):
        narration = FakeNarration()
        generator = StepGenerator(
            make_collaborators(visuals=ScriptedVisuals([make_visual()]), narration=narration),
            visuals_per_step=1,
            enable_narration=False,
        )

        batch = await generator.generate(make_task())

        self.assertEqual(narration.calls, [])
        self.assertIsNone(batch.narration)


class TestCompilerRouter(unittest.TestCase):

    def setUp(self):
        self.router = CompilerRouter()
        self.batch = ActionBatch(stepId=0, actions=make_visual().actions)

    def test_supported_compilers_pass_through(self):
        for compiler in ("js", "latex", "wasm-py"):
            self.assertIs(self.router.validate(self.batch, compiler), self.batch)

    def test_unknown_compiler_raises(self):
        with self.assertRaises(UnknownCompilerError) as ctx:
            self.router.validate(self.batch, "fortran")
        self.assertEqual(ctx.exception.compiler, "fortran")

    def test_empty_actions_raise(self):
        with self.assertRaises(ChunkValidationError):
            self.router.validate(ActionBatch(stepId=0, actions=[]), "js")


if __name__ == "__main__":
    unittest.main()
