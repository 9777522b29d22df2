"""
Orchestration of plan, parallel and sequential generation phases.
"""

from lecturecast.agents.generation.orchestration.lecture_orchestrator import LectureOrchestrator

__all__ = ["LectureOrchestrator"]
