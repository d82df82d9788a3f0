"""Request-scoped access to the orchestrator and error translation."""

from fastapi import HTTPException, Request

from ..core.errors import CommandFailed, GitMonitorError, NotARepository, UncommittedChangesPresent
from ..core.orchestrator import ScanOrchestrator


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def http_error(exc: GitMonitorError) -> HTTPException:
    """Map a domain error onto the matching HTTP status."""
    if isinstance(exc, NotARepository):
        return HTTPException(status_code=404, detail=f"Not a git repository: {exc.path}")
    if isinstance(exc, UncommittedChangesPresent):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, CommandFailed):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
