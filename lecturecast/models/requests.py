from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: str = Field(min_length=1, description="Lecture topic, used verbatim as the cache key.")
    params: Optional[Dict[str, Any]] = Field(None, description="Free-form session parameters.")
    sessionId: Optional[str] = Field(None, description="Existing session to reuse; a new id is minted when absent.")


class QueryResponse(BaseModel):
    sessionId: str


class ParamsRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict)


class AckResponse(BaseModel):
    ok: bool = True
    message: Optional[str] = None


class CacheStats(BaseModel):
    totalKeys: int
    planEntries: int
    chunkEntries: int
    approxMemory: int = Field(description="Bytes on disk used by the cache.")


class CacheClearResponse(BaseModel):
    cleared: int
