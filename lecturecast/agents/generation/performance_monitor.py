"""
Request, plan and step timing plus cache hit tracking.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Optional

from lecturecast.logging_config import get_logger

logger = get_logger(__name__)

MAX_HISTORY = 100


@dataclass
class RequestTracker:
    session_id: str
    start_time: float = field(default_factory=time.monotonic)
    plan_start: Optional[float] = None
    step_starts: Dict[int, float] = field(default_factory=dict)


class PerformanceMonitor:
    """Rolling timing metrics; averages are over the last MAX_HISTORY samples."""

    def __init__(self):
        self.active: Dict[str, RequestTracker] = {}
        self.plan_times: Deque[float] = deque(maxlen=MAX_HISTORY)
        self.step_times: Deque[float] = deque(maxlen=MAX_HISTORY)
        self.request_times: Deque[float] = deque(maxlen=MAX_HISTORY)
        self.total_requests = 0
        self.total_failures = 0
        self.cache_hits = 0
        self.cache_misses = 0

    def start_request(self, session_id: str) -> None:
        self.active[session_id] = RequestTracker(session_id)
        self.total_requests += 1

    def _tracker(self, session_id: str) -> RequestTracker:
        if session_id not in self.active:
            self.start_request(session_id)
        return self.active[session_id]

    def start_plan(self, session_id: str) -> None:
        self._tracker(session_id).plan_start = time.monotonic()

    def end_plan(self, session_id: str) -> None:
        tracker = self.active.get(session_id)
        if tracker and tracker.plan_start is not None:
            duration = time.monotonic() - tracker.plan_start
            self.plan_times.append(duration)
            logger.debug(f"[MONITOR] Plan for {session_id} took {duration * 1000:.0f}ms")

    def start_step(self, session_id: str, step_id: int) -> None:
        self._tracker(session_id).step_starts[step_id] = time.monotonic()

    def end_step(self, session_id: str, step_id: int) -> None:
        tracker = self.active.get(session_id)
        if tracker and step_id in tracker.step_starts:
            self.step_times.append(time.monotonic() - tracker.step_starts.pop(step_id))

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    def complete_request(self, session_id: str, success: bool = True) -> None:
        tracker = self.active.pop(session_id, None)
        if tracker is None:
            return
        self.request_times.append(time.monotonic() - tracker.start_time)
        if not success:
            self.total_failures += 1

    @staticmethod
    def _avg_ms(samples) -> int:
        return round(sum(samples) / len(samples) * 1000) if samples else 0

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return round(self.cache_hits / total * 100, 1) if total else 0.0

    def metrics(self) -> Dict[str, Any]:
        failure_rate = (self.total_failures / self.total_requests * 100) if self.total_requests else 0.0
        return {
            'cacheHitRate': self.cache_hit_rate,
            'avgPlanTime': self._avg_ms(self.plan_times),
            'avgStepTime': self._avg_ms(self.step_times),
            'avgTotalTime': self._avg_ms(self.request_times),
            'activeRequests': len(self.active),
            'totalRequests': self.total_requests,
            'totalFailures': self.total_failures,
            'successRate': round(100 - failure_rate, 1),
        }

    def report(self) -> Dict[str, Any]:
        metrics = self.metrics()
        return {
            'metrics': metrics,
            'summary': (
                f"{metrics['totalRequests']} requests, {metrics['successRate']}% success, "
                f"cache hit rate {metrics['cacheHitRate']}%, avg step {metrics['avgStepTime']}ms"
            ),
        }
