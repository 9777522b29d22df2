"""
Plan and step-chunk cache backed by diskcache.

Entries are addressed by the exact query string. No normalization happens, so
two queries that differ only in case or whitespace are cached separately.
Writes are last-write-wins; two concurrent identical requests may both miss and
both generate.
"""

import hashlib
from typing import Optional

import diskcache

from lecturecast.agents.generation.exceptions import CacheError
from lecturecast.config import CACHE_VERSION, CacheConfig
from lecturecast.logging_config import get_logger
from lecturecast.models.lecture import ActionBatch, Plan
from lecturecast.models.requests import CacheStats
from lecturecast.utils.threading import run_in_threadpool

logger = get_logger(__name__)

CACHE_PREFIX = "cache:"


def open_cache(config: CacheConfig) -> diskcache.Cache:
    return diskcache.Cache(config.directory, size_limit=config.size_limit_mb * 1024 * 1024)


def query_hash(query: str) -> str:
    return hashlib.sha256(query.encode("utf-8")).hexdigest()


def plan_key(query: str) -> str:
    return f"{CACHE_PREFIX}{CACHE_VERSION}:plan:{query_hash(query)}"


def chunk_key(query: str, step_id: int) -> str:
    return f"{CACHE_PREFIX}{CACHE_VERSION}:chunk:{query_hash(query)}:step:{step_id}"


class CacheStore:
    """Async facade over a diskcache.Cache; blocking I/O runs in a thread pool."""

    def __init__(self, cache: diskcache.Cache, expire: Optional[int] = None, thread_pool=None):
        self.cache = cache
        self.expire = expire
        self._pool = thread_pool

    async def _get(self, key: str) -> Optional[str]:
        try:
            return await run_in_threadpool(self._pool, self.cache.get, key)
        except Exception as e:
            raise CacheError(f"Cache read failed for {key}", cause=e) from e

    async def _set(self, key: str, value: str) -> None:
        try:
            await run_in_threadpool(self._pool, self.cache.set, key, value, expire=self.expire)
        except Exception as e:
            raise CacheError(f"Cache write failed for {key}", cause=e) from e

    async def get_plan(self, query: str) -> Optional[Plan]:
        cached = await self._get(plan_key(query))
        if cached is None:
            logger.debug(f"[CACHE] Plan miss for query hash {query_hash(query)[:12]}")
            return None
        logger.info(f"[CACHE] Plan hit for query hash {query_hash(query)[:12]}")
        return Plan.model_validate_json(cached)

    async def put_plan(self, query: str, plan: Plan) -> None:
        await self._set(plan_key(query), plan.model_dump_json())

    async def get_chunk(self, query: str, step_id: int) -> Optional[ActionBatch]:
        cached = await self._get(chunk_key(query, step_id))
        if cached is None:
            return None
        logger.info(f"[CACHE] Chunk hit for step {step_id}")
        return ActionBatch.model_validate_json(cached)

    async def put_chunk(self, query: str, step_id: int, batch: ActionBatch) -> None:
        await self._set(chunk_key(query, step_id), batch.model_dump_json())

    def _stats_sync(self) -> CacheStats:
        plans = chunks = total = 0
        for key in self.cache.iterkeys():
            if not isinstance(key, str) or not key.startswith(CACHE_PREFIX):
                continue
            total += 1
            if ":plan:" in key:
                plans += 1
            elif ":chunk:" in key:
                chunks += 1
        return CacheStats(
            totalKeys=total,
            planEntries=plans,
            chunkEntries=chunks,
            approxMemory=self.cache.volume(),
        )

    async def stats(self) -> CacheStats:
        return await run_in_threadpool(self._pool, self._stats_sync)

    def _clear_sync(self) -> int:
        keys = [k for k in self.cache.iterkeys() if isinstance(k, str) and k.startswith(CACHE_PREFIX)]
        for key in keys:
            self.cache.delete(key)
        return len(keys)

    async def clear_all(self) -> int:
        """Drop every plan and chunk entry; session state is left alone."""
        removed = await run_in_threadpool(self._pool, self._clear_sync)
        logger.info(f"[CACHE] Cleared {removed} cache entries")
        return removed
