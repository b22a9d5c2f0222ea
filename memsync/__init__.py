"""memsync - offline-first note sync over a Google Drive app folder."""

from .api import DriveClient
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveUploadError,
    MemSyncError,
    PlanConflictError,
    SyncError,
)
from .file_gateway import RemoteFileGateway
from .models import Note, RemoteFile
from .store import JsonNoteStore, NoteStore

__all__ = [
    "DriveClient",
    "RemoteFileGateway",
    "Note",
    "RemoteFile",
    "NoteStore",
    "JsonNoteStore",
    "MemSyncError",
    "DriveAPIError",
    "DriveAuthenticationError",
    "DriveConfigError",
    "DriveDownloadError",
    "DriveInvalidResponseError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DrivePermissionError",
    "DriveRateLimitError",
    "DriveUploadError",
    "PlanConflictError",
    "SyncError",
]
