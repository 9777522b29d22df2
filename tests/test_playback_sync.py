"""
Tests for client/playback_sync.py and client/viewer.py

Timing assertions use real sleeps in the tens of milliseconds.
"""
import asyncio
import time
import unittest

from lecturecast.client.animation_queue import AnimationQueue, IRenderer, SectionContext
from lecturecast.client.playback_sync import NarrationPlayer, PlaybackSynchronizer, required_wait
from lecturecast.client.viewer import LectureViewer
from lecturecast.models.events import RenderedPayload, build_event
from lecturecast.models.lecture import Action, NarrationBundle, NarrationEntry, PlanStep, TTSConfig


class StuckPlayer(NarrationPlayer):
    async def play(self, entry):
        await asyncio.Event().wait()


class TimestampRenderer(IRenderer):
    def __init__(self):
        self.started = []

    async def process_action(self, action, section):
        self.started.append((section.visual_group, time.monotonic()))


def narration(visual_number, duration):
    return NarrationEntry(visualNumber=visual_number, type="animation", text="words", duration=duration)


class HeldRenderer(IRenderer):
    """Blocks on actions labelled in `hold` until `release` is set."""

    def __init__(self, hold=()):
        self.hold = set(hold)
        self.release = asyncio.Event()
        self.rendered = []

    async def process_action(self, action, section):
        label = getattr(action, "label", action.op)
        if label in self.hold:
            await self.release.wait()
        self.rendered.append(label)


async def instant_sleep(seconds):
    await asyncio.sleep(0)


class TestRequiredWait(unittest.TestCase):

    def test_both_signals_take_the_longer(self):
        config = TTSConfig(interVisualDelay=2000)
        self.assertEqual(required_wait(5.0, 8.0, config), 10.0)
        self.assertEqual(required_wait(9.0, 8.0, config), 11.0)

    def test_absent_narration_degrades_to_animation(self):
        self.assertEqual(required_wait(5.0, None, TTSConfig(interVisualDelay=2000)), 7.0)

    def test_flags_select_signals(self):
        self.assertEqual(required_wait(5.0, 8.0, TTSConfig(interVisualDelay=1000, waitForNarration=False)), 6.0)
        self.assertEqual(required_wait(5.0, 3.0, TTSConfig(interVisualDelay=1000, waitForAnimation=False)), 4.0)
        self.assertEqual(
            required_wait(5.0, 8.0, TTSConfig(interVisualDelay=1000, waitForAnimation=False, waitForNarration=False)),
            1.0,
        )
        self.assertEqual(required_wait(5.0, 8.0, TTSConfig(enabled=False, interVisualDelay=0)), 5.0)


class TestPlaybackSynchronizer(unittest.IsolatedAsyncioTestCase):

    async def test_waits_for_longer_signal_plus_pause(self):
        sync = PlaybackSynchronizer()
        config = TTSConfig(interVisualDelay=50)
        start = time.monotonic()
        await sync.play_visual(asyncio.sleep(0), 0.05, narration(1, 0.1), config)

        self.assertGreaterEqual(time.monotonic() - start, required_wait(0.05, 0.1, config) - 0.01)

    async def test_stuck_narration_is_bounded(self):
        sync = PlaybackSynchronizer(player=StuckPlayer(), grace=0.05)
        start = time.monotonic()
        await sync.play_visual(asyncio.sleep(0), 0.0, narration(1, 0.05), TTSConfig(interVisualDelay=0))

        self.assertLess(time.monotonic() - start, 1.0)

    async def test_disabled_tts_starts_no_narration(self):
        sync = PlaybackSynchronizer(player=StuckPlayer())
        self.assertIsNone(sync.start(narration(1, 30), TTSConfig(enabled=False)))
        self.assertIsNone(sync.start(None, TTSConfig()))


class TestSynchronizedQueue(unittest.IsolatedAsyncioTestCase):

    def _payload(self, narrations):
        actions = [
            Action(op="customSVG", svgCode="<svg/>", visualGroup="step-0-visual-1", visualNumber=1,
                   priority=2, animationDuration=0.05),
            Action(op="customSVG", svgCode="<svg/>", visualGroup="step-0-visual-2", visualNumber=2,
                   priority=3, animationDuration=0.05),
        ]
        bundle = NarrationBundle(narrations=narrations, totalDuration=sum(n.duration for n in narrations)) if narrations else None
        return RenderedPayload(
            type="actions",
            stepId=0,
            step=PlanStep(id=0, desc="d"),
            actions=actions,
            narration=bundle,
            ttsConfig=TTSConfig(interVisualDelay=50),
        )

    async def _play(self, payload):
        renderer = TimestampRenderer()
        queue = AnimationQueue(renderer, synchronizer=PlaybackSynchronizer())
        viewer = LectureViewer("s1", queue)
        viewer.handle(build_event("rendered", payload, "s1").model_dump(exclude_none=True))
        await queue.wait_idle()
        return renderer.started

    async def test_next_visual_waits_for_narration_and_animation(self):
        started = await self._play(self._payload([narration(1, 0.15), narration(2, 0.05)]))

        gap = started[1][1] - started[0][1]
        self.assertGreaterEqual(gap, 0.15 + 0.05 - 0.01)

    async def test_missing_narration_uses_animation_and_pause(self):
        started = await self._play(self._payload([]))

        gap = started[1][1] - started[0][1]
        self.assertGreaterEqual(gap, 0.05 + 0.05 - 0.01)
        self.assertLess(gap, 1.0)

    async def test_section_after_hard_reset_waits_for_its_own_narration(self):
        renderer = HeldRenderer(hold={"stuck"})
        queue = AnimationQueue(renderer, synchronizer=PlaybackSynchronizer(grace=0.05), sleep=instant_sleep)
        tts = TTSConfig(interVisualDelay=0)

        queue.enqueue(
            [Action(op="customSVG", label="stuck")],
            SectionContext(step_id=0, narration=narration(1, 0.05), tts=tts),
        )
        superseded = queue.play()
        await asyncio.sleep(0)

        queue.hard_reset()
        queue.enqueue(
            [Action(op="customSVG", label="a"), Action(op="customSVG", label="b")],
            SectionContext(step_id=1, narration=narration(1, 0.3), tts=tts),
        )
        start = time.monotonic()
        current = queue.play()
        await asyncio.sleep(0)
        renderer.release.set()

        await superseded
        await current
        elapsed = time.monotonic() - start

        self.assertIsNot(superseded, current)
        self.assertEqual(sorted(renderer.rendered), ["a", "b", "stuck"])
        self.assertGreaterEqual(elapsed, 0.3 - 0.02)


class TestLectureViewer(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.queue = AnimationQueue(TimestampRenderer())
        self.viewer = LectureViewer("s1", self.queue, autoplay=False)

    def test_drops_events_for_other_sessions(self):
        envelope = build_event("status", {"type": "plan_ready"}, "s2").model_dump(exclude_none=True)
        envelope["targetSession"] = "s2"

        self.assertFalse(self.viewer.handle(envelope))
        self.assertEqual(self.viewer.ignored, 1)

    def test_drops_malformed_envelopes(self):
        self.assertFalse(self.viewer.handle({"event": "rendered", "data": {"stepId": "x"}}))

    def test_plan_is_recorded(self):
        envelope = build_event("plan", {"title": "T", "steps": [{"id": 0, "desc": "d"}]}, "s1")
        self.assertTrue(self.viewer.handle(envelope.model_dump(exclude_none=True)))
        self.assertEqual(self.viewer.plan.title, "T")

    def test_rendered_batch_is_queued_per_visual_group(self):
        payload = RenderedPayload(
            type="actions",
            stepId=3,
            actions=[
                Action(op="drawCircle", visualGroup="step-3-visual-1", visualNumber=1, priority=3),
                Action(op="customSVG", visualGroup="step-3-notes", visualNumber=0, priority=1, isNotesKeynote=True),
                Action(op="drawLabel", visualGroup="step-3-visual-1", visualNumber=1, priority=2),
            ],
            narration=NarrationBundle(narrations=[narration(1, 30)], totalDuration=30),
        )
        self.viewer.handle(build_event("rendered", payload, "s1").model_dump(exclude_none=True))

        items = self.queue.state.queue
        self.assertEqual([i.action.priority for i in items], [1, 2, 3])
        self.assertIsNone(items[0].section.narration)
        self.assertEqual(items[1].section.narration.visualNumber, 1)
        self.assertTrue(items[1].opens_section)
        self.assertTrue(items[2].closes_section)
        self.assertEqual(self.viewer.received_steps, [3])

    def test_error_batch_is_recorded_not_queued(self):
        payload = RenderedPayload(type="error", stepId=1, error="boom")
        self.viewer.handle(build_event("rendered", payload, "s1").model_dump(exclude_none=True))

        self.assertEqual(self.viewer.failed_steps, [1])
        self.assertEqual(self.queue.state.queue, [])

    def test_join_message(self):
        self.assertEqual(self.viewer.join_message(), {"event": "join", "data": {"sessionId": "s1"}})


if __name__ == "__main__":
    unittest.main()
