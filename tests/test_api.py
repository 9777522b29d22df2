"""
HTTP and WebSocket surface tests via FastAPI's TestClient.

The app is built around an injected orchestrator wired to fake collaborators,
so no model calls are made.
"""
import tempfile
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from fastapi.testclient import TestClient

from lecturecast.agents.generation.circuit_breaker import CircuitState
from lecturecast.api.server import build_orchestrator, create_app
from tests.helpers import OrchestratorHarness, make_collaborators, make_plan, make_settings


class TestLectureApi(unittest.TestCase):

    def setUp(self):
        self.h = OrchestratorHarness()
        self.app = create_app(orchestrator=self.h.orchestrator, settings=self.h.settings)
        self.client = TestClient(self.app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.h.disk.close()
        self.h.tmp.cleanup()

    def test_submit_query_returns_session(self):
        response = self.client.post("/api/query", json={"query": "Intro to X", "sessionId": "abc"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"sessionId": "abc"})

    def test_submit_query_mints_session_id(self):
        response = self.client.post("/api/query", json={"query": "Intro to X"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["sessionId"])

    def test_blank_query_is_rejected(self):
        self.assertEqual(self.client.post("/api/query", json={"query": "   "}).status_code, 400)
        self.assertEqual(self.client.post("/api/query", json={"query": ""}).status_code, 422)

    def test_open_circuit_returns_503(self):
        breaker = self.h.orchestrator.breaker
        breaker.state = CircuitState.OPEN
        breaker.last_failure_time = time.monotonic()

        response = self.client.post("/api/query", json={"query": "Intro to X"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(self.client.get("/health").json()["status"], "degraded")

    def test_next_step_for_unknown_session_is_404(self):
        self.assertEqual(self.client.post("/api/session/nope/next").status_code, 404)

    def test_update_params(self):
        response = self.client.post("/api/session/abc/params", json={"params": {"level": "intro"}})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])

    def test_health_and_performance(self):
        health = self.client.get("/health").json()
        self.assertEqual(health["status"], "ok")
        self.assertIn("plan-jobs", health["queues"])

        performance = self.client.get("/api/performance").json()
        self.assertIn("metrics", performance)
        self.assertEqual(performance["circuitBreaker"]["state"], "CLOSED")

    def test_cache_stats_and_clear(self):
        stats = self.client.get("/api/cache/stats").json()
        self.assertEqual(stats["totalKeys"], 0)
        self.assertEqual(self.client.post("/api/cache/clear").json(), {"cleared": 0})

    def test_websocket_join_then_receive_plan(self):
        with self.client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "join", "data": "s1"})
            joined = ws.receive_json()
            self.assertEqual(joined["event"], "joined")
            self.assertEqual(joined["data"]["sessionId"], "s1")

            self.client.post("/api/query", json={"query": "Intro to X", "sessionId": "s1"})

            received = []
            for _ in range(50):
                message = ws.receive_json()
                received.append(message["event"])
                if message["event"] == "plan" or message["data"].get("type") == "plan_failed":
                    break
            self.assertEqual(received[-1], "plan")
            self.assertEqual(message["sessionId"], "s1")


class TestBuildOrchestrator(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cache-io-test")
        settings = make_settings(self.tmp.name)
        with patch("lecturecast.agents.ai.lecture_agents.build_default_collaborators",
                   return_value=make_collaborators()):
            self.orchestrator = build_orchestrator(settings, self.pool)

    async def asyncTearDown(self):
        self.orchestrator.cache.cache.close()
        self.pool.shutdown(wait=True)
        self.tmp.cleanup()

    async def test_stores_run_disk_io_on_the_given_pool(self):
        self.assertIs(self.orchestrator.cache._pool, self.pool)
        self.assertIs(self.orchestrator.sessions._pool, self.pool)

        with patch.object(self.pool, "submit", wraps=self.pool.submit) as submit:
            await self.orchestrator.cache.put_plan("Intro to X", make_plan(2))
            plan = await self.orchestrator.cache.get_plan("Intro to X")
            await self.orchestrator.sessions.set_current_step("s1", 1)

        self.assertEqual(len(plan.steps), 2)
        self.assertEqual(submit.call_count, 3)


if __name__ == "__main__":
    unittest.main()
