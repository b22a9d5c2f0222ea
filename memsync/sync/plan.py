"""Sync plan: the actions computed for one pass."""

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import PlanConflictError
from ..models import Note, RemoteFile
from .modes import SyncMode


@dataclass
class DownloadItem:
    """Fetch a remote file; compare with ``local`` when both sides exist."""

    note_id: str
    remote_file: RemoteFile
    local: Optional[Note] = None


@dataclass
class UploadItem:
    """Push a local note; update ``remote_id`` in place when given."""

    note: Note
    remote_id: Optional[str] = None

    @property
    def note_id(self) -> str:
        return self.note.id


@dataclass
class DeleteRemoteItem:
    """Delete a remote file, then purge the local tombstone."""

    note_id: str
    remote_id: str


@dataclass
class SyncPlan:
    """Four disjoint action lists for one sync pass.

    A note id may be claimed by at most one list; a second claim raises
    PlanConflictError.
    """

    mode: SyncMode
    to_download: list[DownloadItem] = field(default_factory=list)
    to_upload: list[UploadItem] = field(default_factory=list)
    to_delete_remote: list[DeleteRemoteItem] = field(default_factory=list)
    to_hard_delete_local: list[str] = field(default_factory=list)
    skipped: int = 0
    """Ids inspected and left alone (unchanged or excluded)"""

    _claimed: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def _claim(self, note_id: str, list_name: str) -> None:
        owner = self._claimed.get(note_id)
        if owner is not None:
            raise PlanConflictError(
                f"Note {note_id} already planned for {owner}, cannot add to {list_name}"
            )
        self._claimed[note_id] = list_name

    def is_planned(self, note_id: str) -> bool:
        """Whether the id already belongs to one of the lists."""
        return note_id in self._claimed

    def add_download(
        self, remote_file: RemoteFile, local: Optional[Note] = None
    ) -> None:
        note_id = remote_file.note_id or ""
        self._claim(note_id, "download")
        self.to_download.append(DownloadItem(note_id, remote_file, local))

    def add_upload(self, note: Note, remote_id: Optional[str] = None) -> None:
        self._claim(note.id, "upload")
        self.to_upload.append(UploadItem(note, remote_id))

    def add_delete_remote(self, note_id: str, remote_id: str) -> None:
        self._claim(note_id, "delete_remote")
        self.to_delete_remote.append(DeleteRemoteItem(note_id, remote_id))

    def add_hard_delete_local(self, note_id: str) -> None:
        self._claim(note_id, "hard_delete_local")
        self.to_hard_delete_local.append(note_id)

    @property
    def total_actions(self) -> int:
        return (
            len(self.to_download)
            + len(self.to_upload)
            + len(self.to_delete_remote)
            + len(self.to_hard_delete_local)
        )

    @property
    def is_empty(self) -> bool:
        return self.total_actions == 0

    def summary(self) -> dict:
        """Per-list counts, for logging and display."""
        return {
            "mode": self.mode.value,
            "downloads": len(self.to_download),
            "uploads": len(self.to_upload),
            "deletes_remote": len(self.to_delete_remote),
            "deletes_local": len(self.to_hard_delete_local),
            "skips": self.skipped,
        }
