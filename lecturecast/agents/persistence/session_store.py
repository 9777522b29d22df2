"""
Per-session state: plan, query, params, step pointer and cached chunks.

Sessions are implicit key namespaces. Nothing creates or tears them down; the
first write for an id brings it into existence.
"""

import json
from typing import Any, Dict, List, Optional

import diskcache

from lecturecast.agents.generation.exceptions import CacheError
from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import ActionBatch, Plan
from lecturecast.utils.threading import run_in_threadpool

logger = get_logger(__name__)


def _key(session_id: str, name: str) -> str:
    return f"session:{session_id}:{name}"


class SessionStore:
    def __init__(self, cache: diskcache.Cache, expire: Optional[int] = None, thread_pool=None):
        self.cache = cache
        self.expire = expire
        self._pool = thread_pool

    async def _get(self, key: str) -> Optional[str]:
        try:
            return await run_in_threadpool(self._pool, self.cache.get, key)
        except Exception as e:
            raise CacheError(f"Session read failed for {key}", cause=e) from e

    async def _set(self, key: str, value: str) -> None:
        try:
            await run_in_threadpool(self._pool, self.cache.set, key, value, expire=self.expire)
        except Exception as e:
            raise CacheError(f"Session write failed for {key}", cause=e) from e

    async def exists(self, session_id: str) -> bool:
        return await self._get(_key(session_id, "query")) is not None

    async def set_query(self, session_id: str, query: str) -> None:
        await self._set(_key(session_id, "query"), query)

    async def get_query(self, session_id: str) -> Optional[str]:
        return await self._get(_key(session_id, "query"))

    async def set_params(self, session_id: str, params: Dict[str, Any]) -> None:
        await self._set(_key(session_id, "params"), json.dumps(params))

    async def get_params(self, session_id: str) -> Dict[str, Any]:
        raw = await self._get(_key(session_id, "params"))
        return json.loads(raw) if raw else {}

    async def set_plan(self, session_id: str, plan: Plan) -> None:
        await self._set(_key(session_id, "plan"), plan.model_dump_json())

    async def get_plan(self, session_id: str) -> Optional[Plan]:
        raw = await self._get(_key(session_id, "plan"))
        return Plan.model_validate_json(raw) if raw else None

    async def set_current_step(self, session_id: str, index: int) -> None:
        await self._set(_key(session_id, "current_step"), str(index))

    async def get_current_step(self, session_id: str) -> int:
        raw = await self._get(_key(session_id, "current_step"))
        return int(raw) if raw else 0

    async def put_chunk(self, session_id: str, step_id: int, batch: ActionBatch) -> None:
        await self._set(_key(session_id, f"chunk:{step_id}"), batch.model_dump_json())

    async def get_chunk(self, session_id: str, step_id: int) -> Optional[ActionBatch]:
        raw = await self._get(_key(session_id, f"chunk:{step_id}"))
        return ActionBatch.model_validate_json(raw) if raw else None

    async def get_chunks(self, session_id: str, plan: Plan) -> List[ActionBatch]:
        """Chunks already generated for the session, in step order."""
        chunks = []
        for step in plan.steps:
            chunk = await self.get_chunk(session_id, step.id)
            if chunk is not None:
                chunks.append(chunk)
        return chunks
