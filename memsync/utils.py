"""Utility functions and constants for memsync."""

import time
from datetime import datetime
from typing import Optional

# =============================================================================
# Constants for sync operations
# =============================================================================

# Max parallel transfers. Stays well within the Drive API quota (~10 QPS
# sustained) while keeping wall-clock time low for large note sets.
DEFAULT_BATCH_CONCURRENCY: int = 6

# Delay before a debounced sync pass starts
DEFAULT_DEBOUNCE_SECONDS: float = 2.0

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Page size for remote listings (Drive maximum)
DEFAULT_PAGE_SIZE: int = 1000

NOTE_FILE_SUFFIX: str = ".json"

# Remote-only ids with this prefix are seed content and never synced
SAMPLE_ID_PREFIX: str = "sample-"


# =============================================================================
# Note file naming
# =============================================================================


def note_filename(note_id: str) -> str:
    """Return the remote file name for a note id.

    Examples:
        >>> note_filename("abc")
        'abc.json'
    """
    return f"{note_id}{NOTE_FILE_SUFFIX}"


def note_id_from_filename(name: str) -> Optional[str]:
    """Extract the note id from a remote file name.

    Args:
        name: Remote file name (e.g. "abc.json")

    Returns:
        Note id, or None if the name is not a note file
    """
    if not name or not name.endswith(NOTE_FILE_SUFFIX):
        return None
    note_id = name[: -len(NOTE_FILE_SUFFIX)]
    return note_id or None


# =============================================================================
# Timestamp utilities
# =============================================================================


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def format_epoch_ms(epoch_ms: Optional[int]) -> str:
    """Format epoch milliseconds for display.

    Args:
        epoch_ms: Epoch timestamp in milliseconds (None or 0 for "never")

    Returns:
        Local time string like "2025-01-15 10:30:00", or "never"
    """
    if not epoch_ms:
        return "never"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by the Drive API.

    Args:
        timestamp_str: Timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Timezone-aware datetime or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        return datetime.fromisoformat(timestamp_str)
    except (ValueError, AttributeError):
        return None
