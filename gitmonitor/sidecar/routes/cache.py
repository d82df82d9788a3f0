"""
Cache API routes
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...core.orchestrator import ScanOrchestrator
from ...utils import format_iso
from ..deps import get_orchestrator
from .projects import ActionResponse

router = APIRouter()


class CacheStatsResponse(BaseModel):
    path: str
    exists: bool
    size_bytes: int = 0
    formatted_size: str = "0 bytes"
    last_modified: Optional[str] = None


@router.get("/stats")
def get_cache_stats(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> CacheStatsResponse:
    store = orchestrator.cache_store
    stats = store.stats()
    if stats is None:
        return CacheStatsResponse(path=str(store.cache_path), exists=False)
    return CacheStatsResponse(
        path=str(store.cache_path),
        exists=True,
        size_bytes=stats.size_bytes,
        formatted_size=stats.formatted_size,
        last_modified=format_iso(stats.last_modified),
    )


@router.delete("")
def clear_cache(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ActionResponse:
    """Delete the cache file; the next startup runs a full scan."""
    existed = orchestrator.cache_store.clear()
    return ActionResponse(
        success=True,
        message="Cache cleared" if existed else "No cache to clear",
    )
