"""Exceptions raised by memsync."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .sync.executor import SyncResult


class MemSyncError(Exception):
    """Base exception for all memsync errors."""


class DriveConfigError(MemSyncError):
    """Raised when required configuration (e.g. the access token) is missing."""


class DriveAPIError(MemSyncError):
    """Raised when a request against the remote Drive API fails."""


class DriveAuthenticationError(DriveAPIError):
    """Raised on 401 responses or when no valid access token can be obtained.

    Callers should treat this as "reconnect required"; the engine never
    retries it on its own.
    """


class DrivePermissionError(DriveAPIError):
    """Raised on 403 responses."""


class DriveNotFoundError(DriveAPIError):
    """Raised on 404 responses."""


class DriveRateLimitError(DriveAPIError):
    """Raised on 429 responses once retries are exhausted."""


class DriveNetworkError(DriveAPIError):
    """Raised on transport-level failures (DNS, connection reset, timeouts)."""


class DriveInvalidResponseError(DriveAPIError):
    """Raised when the server returns something that is not the expected JSON."""


class DriveDownloadError(DriveAPIError):
    """Raised when downloading file content fails."""


class DriveUploadError(DriveAPIError):
    """Raised when uploading file content fails."""


class PlanConflictError(MemSyncError, ValueError):
    """Raised when a note id is assigned to more than one plan list."""


class SyncError(MemSyncError):
    """Raised when a sync pass finishes with item-level failures."""

    def __init__(self, message: str, result: Optional["SyncResult"] = None):
        super().__init__(message)
        self.result = result
