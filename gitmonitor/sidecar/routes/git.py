"""
Git API routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...core.errors import GitMonitorError
from ...core.orchestrator import ScanOrchestrator
from ...utils import format_iso
from ..deps import get_orchestrator, http_error
from .projects import SnapshotResponse, snapshot_response

router = APIRouter()
logger = logging.getLogger(__name__)


class CommitResponse(BaseModel):
    """A single commit from the repository history."""

    hash: str
    short_hash: str
    author: str
    email: str
    message: str
    date: Optional[str] = None


class SwitchBranchRequest(BaseModel):
    path: str
    branch: str


@router.get("/history")
async def get_history(
    path: str = Query(..., description="Repository path"),
    limit: int = Query(10, ge=1, le=500),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> list[CommitResponse]:
    try:
        commits = await orchestrator.commit_history(path, limit)
    except GitMonitorError as exc:
        raise http_error(exc) from exc
    return [
        CommitResponse(
            hash=commit.hash,
            short_hash=commit.short_hash,
            author=commit.author,
            email=commit.email,
            message=commit.message,
            date=format_iso(commit.date),
        )
        for commit in commits
    ]


@router.post("/switch-branch")
async def switch_branch(
    request: SwitchBranchRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> SnapshotResponse:
    """Check out a branch; refused with 409 while the tree is dirty."""
    try:
        snapshot = await orchestrator.switch_branch(request.path, request.branch)
    except GitMonitorError as exc:
        logger.info("Branch switch in %s refused: %s", request.path, exc)
        raise http_error(exc) from exc
    return snapshot_response(snapshot)
