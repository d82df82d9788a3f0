"""Core monitoring logic: discovery, status, staleness, cache, orchestration."""

from .cache import CacheStats, CacheStore, fingerprint_roots
from .config import ConfigStore, MonitorConfig, normalize_path
from .discovery import Discoverer, is_git_repo
from .errors import (
    CacheCorrupt,
    CacheInvalid,
    CommandFailed,
    GitMonitorError,
    NotARepository,
    UncommittedChangesPresent,
)
from .models import (
    BranchInfo,
    CacheRecord,
    CommitInfo,
    HealthStatus,
    NodeKind,
    StatusSnapshot,
    TreeNode,
)
from .orchestrator import ScanOrchestrator, ScanState
from .process import DependencyStatus, ProcessResult, ProcessRunner, check_dependencies, resolve_command
from .staleness import ChangeStats, StalenessDetector
from .status_fetcher import FetchMode, StatusFetcher

__all__ = [
    "BranchInfo",
    "CacheCorrupt",
    "CacheInvalid",
    "CacheRecord",
    "CacheStats",
    "CacheStore",
    "ChangeStats",
    "CommandFailed",
    "CommitInfo",
    "ConfigStore",
    "DependencyStatus",
    "Discoverer",
    "FetchMode",
    "GitMonitorError",
    "HealthStatus",
    "MonitorConfig",
    "NodeKind",
    "NotARepository",
    "ProcessResult",
    "ProcessRunner",
    "ScanOrchestrator",
    "ScanState",
    "StalenessDetector",
    "StatusFetcher",
    "StatusSnapshot",
    "TreeNode",
    "UncommittedChangesPresent",
    "check_dependencies",
    "fingerprint_roots",
    "is_git_repo",
    "normalize_path",
    "resolve_command",
]
