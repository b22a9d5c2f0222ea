"""Sync engine for memsync - offline-first note replication."""

from .controller import (
    SyncController,
    SyncErrorCategory,
    SyncErrorInfo,
    SyncStatus,
    classify_error,
)
from .executor import SyncExecutor, SyncResult
from .modes import SyncMode
from .plan import DeleteRemoteItem, DownloadItem, SyncPlan, UploadItem
from .planner import SyncPlanner
from .state import SyncSnapshot, SyncStateManager

__all__ = [
    "SyncController",
    "SyncErrorCategory",
    "SyncErrorInfo",
    "SyncStatus",
    "classify_error",
    "SyncExecutor",
    "SyncResult",
    "SyncMode",
    "SyncPlan",
    "DownloadItem",
    "UploadItem",
    "DeleteRemoteItem",
    "SyncPlanner",
    "SyncSnapshot",
    "SyncStateManager",
]
