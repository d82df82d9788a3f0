"""
Settings API routes: monitored roots, ignore list, external tools.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel

from ...core.orchestrator import ScanOrchestrator
from ...core.process import check_dependencies
from ..deps import get_orchestrator
from .projects import ActionResponse, PathRequest

router = APIRouter()
logger = logging.getLogger(__name__)


class RootsResponse(BaseModel):
    root_paths: list[str]
    ignored_paths: list[str]


class DependencyResponse(BaseModel):
    command: str
    message: str
    install_instruction: str


def _roots_response(orchestrator: ScanOrchestrator) -> RootsResponse:
    config = orchestrator.config
    return RootsResponse(
        root_paths=list(config.root_paths),
        ignored_paths=list(config.ignored_paths),
    )


@router.get("/roots")
def get_roots(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> RootsResponse:
    return _roots_response(orchestrator)


@router.post("/roots")
def add_root(
    request: PathRequest,
    background_tasks: BackgroundTasks,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> RootsResponse:
    """Add a root and rescan in the background."""
    if orchestrator.add_root(request.path):
        logger.info("Added root %s", request.path)
        background_tasks.add_task(orchestrator.full_scan)
    return _roots_response(orchestrator)


@router.delete("/roots")
def remove_root(
    path: str = Query(..., description="Root path to stop monitoring"),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> RootsResponse:
    if not orchestrator.remove_root(path):
        raise HTTPException(status_code=404, detail=f"Not a monitored root: {path}")
    logger.info("Removed root %s", path)
    return _roots_response(orchestrator)


@router.post("/ignore")
def ignore_path(
    request: PathRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ActionResponse:
    added = orchestrator.ignore_path(request.path)
    message = f"Ignoring {request.path}" if added else f"{request.path} was already ignored"
    return ActionResponse(success=True, message=message)


@router.get("/dependencies")
def get_dependencies() -> list[DependencyResponse]:
    """External tools that could not be found."""
    return [
        DependencyResponse(
            command=status.command,
            message=status.message,
            install_instruction=status.install_instruction,
        )
        for status in check_dependencies()
    ]
