"""Snapshot persistence for delta sync.

The snapshot records, for every note, the remote modified time observed at
the end of the last successful pass, plus when that pass finished. A later
session compares the current listing against it to find remote changes
without downloading content.
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..models import RemoteFile, index_remote_files
from ..utils import now_ms

logger = logging.getLogger(__name__)


@dataclass
class SyncSnapshot:
    """Remote state as of the last successful sync pass."""

    modified_times: dict[str, str] = field(default_factory=dict)
    """note id -> remote modifiedTime"""

    last_sync_time: int = 0
    """Epoch milliseconds when the last successful pass finished"""

    def to_dict(self) -> dict:
        """Convert snapshot to dictionary for JSON serialization."""
        return {
            "snapshot": dict(sorted(self.modified_times.items())),
            "last_sync_time": str(self.last_sync_time),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncSnapshot":
        """Create SyncSnapshot from dictionary."""
        modified_times = data.get("snapshot") or {}
        if not isinstance(modified_times, dict):
            raise ValueError("snapshot must be an object")
        return cls(
            modified_times={str(k): str(v) for k, v in modified_times.items()},
            last_sync_time=int(data.get("last_sync_time") or 0),
        )

    @classmethod
    def from_remote_files(
        cls, remote_files: list[RemoteFile], last_sync_time: int
    ) -> "SyncSnapshot":
        """Build a snapshot from a remote listing.

        Duplicates resolve the same way the planner resolves them, so the
        recorded time is the one the next delta pass compares against.
        """
        modified_times = {
            note_id: f.modified_time
            for note_id, f in index_remote_files(remote_files).items()
        }
        return cls(modified_times=modified_times, last_sync_time=last_sync_time)


class SyncStateManager:
    """Manages snapshot persistence.

    The state is stored in a JSON file in the user's config directory, keyed
    by a hash of the API URL and profile name so several accounts can share
    one state directory.
    """

    def __init__(
        self,
        state_dir: Optional[Path] = None,
        api_url: str = "",
        profile: str = "default",
    ):
        """Initialize state manager.

        Args:
            state_dir: Directory to store state files. Defaults to
                      ~/.config/memsync/sync_state/
            api_url: Remote API URL the snapshot belongs to
            profile: Profile name for separating accounts
        """
        if state_dir is None:
            state_dir = Path.home() / ".config" / "memsync" / "sync_state"
        self.state_dir = state_dir
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.api_url = api_url
        self.profile = profile

    def _get_state_key(self) -> str:
        """Generate a unique key for this remote/profile combination."""
        combined = f"{self.api_url}:{self.profile}"
        return hashlib.sha256(combined.encode()).hexdigest()[:16]

    @property
    def state_file(self) -> Path:
        """Path to the state file."""
        return self.state_dir / f"{self._get_state_key()}.json"

    def load(self) -> Optional[SyncSnapshot]:
        """Load the snapshot.

        Returns:
            SyncSnapshot if one was saved, None otherwise (forces a full sync)
        """
        if not self.state_file.exists():
            logger.debug(f"No sync snapshot found at {self.state_file}")
            return None

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
            snapshot = SyncSnapshot.from_dict(data)
            logger.debug(
                f"Loaded sync snapshot with {len(snapshot.modified_times)} entries "
                f"from {snapshot.last_sync_time}"
            )
            return snapshot
        except (OSError, json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load sync snapshot, next sync is full: {e}")
            return None

    def _write(self, snapshot: SyncSnapshot) -> None:
        """Write the snapshot atomically."""
        fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_name, self.state_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save(
        self,
        remote_files: list[RemoteFile],
        last_sync_time: Optional[int] = None,
    ) -> SyncSnapshot:
        """Replace the snapshot with the given remote listing.

        Args:
            remote_files: Remote listing observed at the end of the pass
            last_sync_time: Completion time (epoch ms); defaults to now

        Returns:
            The saved snapshot
        """
        if last_sync_time is None:
            last_sync_time = now_ms()
        snapshot = SyncSnapshot.from_remote_files(remote_files, last_sync_time)
        self._write(snapshot)
        logger.debug(
            f"Saved sync snapshot with {len(snapshot.modified_times)} entries "
            f"to {self.state_file}"
        )
        return snapshot

    def update_entry(self, note_id: str, modified_time: str) -> bool:
        """Record a single note's new remote modified time.

        Only applies when a snapshot exists; without one the next pass is a
        full reconciliation anyway.

        Returns:
            True if the snapshot was updated
        """
        snapshot = self.load()
        if snapshot is None:
            return False
        snapshot.modified_times[note_id] = modified_time
        self._write(snapshot)
        return True

    def remove_entry(self, note_id: str) -> bool:
        """Drop a single note from the snapshot.

        Returns:
            True if an entry was removed
        """
        snapshot = self.load()
        if snapshot is None or note_id not in snapshot.modified_times:
            return False
        del snapshot.modified_times[note_id]
        self._write(snapshot)
        return True

    def clear(self) -> bool:
        """Delete the snapshot, forcing the next pass to be full.

        Returns:
            True if state was cleared, False if no state existed
        """
        if self.state_file.exists():
            self.state_file.unlink()
            logger.debug(f"Cleared sync snapshot at {self.state_file}")
            return True
        return False
