"""
Query submission and per-session controls.
"""

from fastapi import APIRouter, Depends, HTTPException

from lecturecast.agents.generation.exceptions import SessionNotFoundError
from lecturecast.agents.generation.orchestration import LectureOrchestrator
from lecturecast.api.dependencies import get_orchestrator
from lecturecast.logging_config import get_logger
from lecturecast.models.requests import AckResponse, ParamsRequest, QueryRequest, QueryResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Lecture"])


@router.post("/query", response_model=QueryResponse)
async def submit_query(request: QueryRequest, orchestrator: LectureOrchestrator = Depends(get_orchestrator)):
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    if orchestrator.breaker.is_open:
        raise HTTPException(status_code=503, detail="Plan generation is temporarily unavailable")
    session_id = await orchestrator.submit_query(request.query, request.params, request.sessionId)
    logger.info(f"Accepted query for session {session_id}")
    return QueryResponse(sessionId=session_id)


@router.post("/session/{session_id}/params", response_model=AckResponse)
async def update_params(
    session_id: str,
    request: ParamsRequest,
    orchestrator: LectureOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.update_params(session_id, request.params)
    return AckResponse()


@router.post("/session/{session_id}/next", response_model=AckResponse)
async def next_step(session_id: str, orchestrator: LectureOrchestrator = Depends(get_orchestrator)):
    try:
        queued = await orchestrator.trigger_next_step(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not queued:
        return AckResponse(ok=False, message="No remaining steps")
    return AckResponse()
