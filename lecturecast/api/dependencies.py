from fastapi import Request, WebSocket

from lecturecast.agents.generation.orchestration import LectureOrchestrator


def get_orchestrator(request: Request) -> LectureOrchestrator:
    return request.app.state.orchestrator


def get_ws_orchestrator(websocket: WebSocket) -> LectureOrchestrator:
    return websocket.app.state.orchestrator
