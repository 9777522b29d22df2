"""
Health, performance and cache administration endpoints.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from lecturecast.agents.generation.orchestration import LectureOrchestrator
from lecturecast.api.dependencies import get_orchestrator
from lecturecast.logging_config import get_logger
from lecturecast.models.requests import CacheClearResponse, CacheStats

logger = get_logger(__name__)

router = APIRouter(tags=["Monitoring"])


@router.get("/health")
async def health(orchestrator: LectureOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.health()


@router.get("/api/performance")
async def performance(orchestrator: LectureOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.performance_report()


@router.get("/api/cache/stats", response_model=CacheStats)
async def cache_stats(orchestrator: LectureOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.cache_stats()


@router.post("/api/cache/clear", response_model=CacheClearResponse)
async def cache_clear(orchestrator: LectureOrchestrator = Depends(get_orchestrator)):
    cleared = await orchestrator.clear_cache()
    logger.info(f"Cache cleared via API ({cleared} entries)")
    return CacheClearResponse(cleared=cleared)
