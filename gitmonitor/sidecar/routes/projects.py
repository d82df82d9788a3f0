"""
Project tree API routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ...core.models import BranchInfo, StatusSnapshot, TreeNode
from ...core.orchestrator import ScanOrchestrator
from ...utils import format_iso
from ..deps import get_orchestrator

router = APIRouter()


class BranchResponse(BaseModel):
    name: str
    is_current: bool
    last_commit_hash: Optional[str] = None
    last_commit_date: Optional[str] = None


class SnapshotResponse(BaseModel):
    """Git state of one repository as last observed."""

    current_branch: str
    has_uncommitted_changes: bool
    untracked_files: list[str]
    modified_files: list[str]
    staged_files: list[str]
    last_commit_hash: Optional[str] = None
    last_commit_message: Optional[str] = None
    last_commit_date: Optional[str] = None
    ahead: int
    behind: int
    pending_pull_requests: int
    has_remote_host: bool
    health: str
    branches: list[BranchResponse]


class NodeResponse(BaseModel):
    """A node of the monitored tree with its children."""

    path: str
    name: str
    kind: str
    status: Optional[SnapshotResponse] = None
    status_description: str
    last_observed: Optional[str] = None
    last_reviewed: Optional[str] = None
    children: list["NodeResponse"] = []


NodeResponse.model_rebuild()


class ProjectsResponse(BaseModel):
    state: str
    last_scan: Optional[str] = None
    total_repositories: int
    changed_repositories: int
    roots: list[NodeResponse]


class PathRequest(BaseModel):
    path: str


class ActionResponse(BaseModel):
    success: bool
    message: str


def branch_response(branch: BranchInfo) -> BranchResponse:
    return BranchResponse(
        name=branch.name,
        is_current=branch.is_current,
        last_commit_hash=branch.last_commit_hash,
        last_commit_date=format_iso(branch.last_commit_date),
    )


def snapshot_response(snapshot: StatusSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        current_branch=snapshot.current_branch,
        has_uncommitted_changes=snapshot.has_uncommitted_changes,
        untracked_files=list(snapshot.untracked_files),
        modified_files=list(snapshot.modified_files),
        staged_files=list(snapshot.staged_files),
        last_commit_hash=snapshot.last_commit_hash,
        last_commit_message=snapshot.last_commit_message,
        last_commit_date=format_iso(snapshot.last_commit_date),
        ahead=snapshot.ahead,
        behind=snapshot.behind,
        pending_pull_requests=snapshot.pending_pull_requests,
        has_remote_host=snapshot.has_remote_host,
        health=snapshot.health.value,
        branches=[branch_response(branch) for branch in snapshot.branches],
    )


def node_response(node: TreeNode) -> NodeResponse:
    return NodeResponse(
        path=str(node.path),
        name=node.name,
        kind=node.kind.value,
        status=snapshot_response(node.status) if node.status else None,
        status_description=node.status_description,
        last_observed=format_iso(node.last_observed),
        last_reviewed=format_iso(node.last_reviewed),
        children=[node_response(child) for child in node.children],
    )


@router.get("")
def get_projects(orchestrator: ScanOrchestrator = Depends(get_orchestrator)) -> ProjectsResponse:
    """Current scan state and the whole monitored tree."""
    stats = orchestrator.change_stats()
    return ProjectsResponse(
        state=orchestrator.state.value,
        last_scan=format_iso(orchestrator.last_scan),
        total_repositories=stats.total_repos,
        changed_repositories=stats.changed_repos,
        roots=[node_response(root) for root in orchestrator.roots],
    )


@router.get("/repositories")
def list_repositories(
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> list[NodeResponse]:
    return [node_response(node) for node in orchestrator.repositories()]


@router.get("/node")
def get_node(
    path: str = Query(..., description="Absolute path of the node"),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> NodeResponse:
    node = orchestrator.get_node(path)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Not monitored: {path}")
    return node_response(node)


@router.post("/reviewed")
def mark_reviewed(
    request: PathRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> ActionResponse:
    if not orchestrator.mark_reviewed(request.path):
        raise HTTPException(status_code=404, detail=f"Not monitored: {request.path}")
    return ActionResponse(success=True, message=f"Marked {request.path} as reviewed")
