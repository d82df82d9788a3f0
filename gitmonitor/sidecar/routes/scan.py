"""
Scan API routes
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...core.errors import GitMonitorError
from ...core.orchestrator import ScanOrchestrator
from ..deps import get_orchestrator, http_error
from .projects import PathRequest, SnapshotResponse, snapshot_response

router = APIRouter()
logger = logging.getLogger(__name__)


class ScanResponse(BaseModel):
    """Outcome of a full scan or light refresh."""

    success: bool
    repositories: int
    refreshed: int
    message: str


@router.post("/full")
async def full_scan(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanResponse:
    """Rediscover every root and fetch every repository."""
    await orchestrator.full_scan()
    total = len(orchestrator.repositories())
    return ScanResponse(
        success=True,
        repositories=total,
        refreshed=total,
        message=f"Scanned {total} repositories",
    )


@router.post("/light")
async def light_refresh(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ScanResponse:
    """Refresh only the repositories whose git state changed."""
    refreshed = await orchestrator.light_refresh()
    total = len(orchestrator.repositories())
    return ScanResponse(
        success=True,
        repositories=total,
        refreshed=refreshed,
        message=f"Refreshed {refreshed} of {total} repositories",
    )


@router.post("/repository")
async def refresh_repository(
    request: PathRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> SnapshotResponse:
    try:
        snapshot = await orchestrator.refresh_repository(request.path)
    except GitMonitorError as exc:
        logger.warning("Refresh of %s failed: %s", request.path, exc)
        raise http_error(exc) from exc
    return snapshot_response(snapshot)
