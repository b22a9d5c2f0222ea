"""Apply a SyncPlan against the remote gateway and the local store."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..exceptions import DriveInvalidResponseError, DriveNotFoundError
from ..file_gateway import RemoteFileGateway, UploadRequest
from ..models import Note
from ..store import NoteStore
from ..utils import now_ms
from .modes import SyncMode
from .plan import DeleteRemoteItem, DownloadItem, SyncPlan, UploadItem
from .state import SyncSnapshot, SyncStateManager

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


def _empty_stats() -> dict[str, int]:
    return {
        "uploads": 0,
        "downloads": 0,
        "deletes_local": 0,
        "deletes_remote": 0,
        "skips": 0,
    }


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    mode: SyncMode
    applied_count: int = 0
    failed_ids: list[str] = field(default_factory=list)
    errors: dict[str, Exception] = field(default_factory=dict)
    """note id -> exception for every item that failed"""

    stats: dict[str, int] = field(default_factory=_empty_stats)
    snapshot: Optional[SyncSnapshot] = None
    """Snapshot committed at the end of the pass, None if withheld"""

    @property
    def success(self) -> bool:
        return not self.failed_ids

    def record_failure(self, note_id: str, error: Exception) -> None:
        if note_id not in self.errors:
            self.failed_ids.append(note_id)
        self.errors[note_id] = error

    def record(self, stat: str) -> None:
        self.stats[stat] += 1
        if stat != "skips":
            self.applied_count += 1


class SyncExecutor:
    """Runs the phases of a plan in order: download, upload, remote delete,
    local delete.

    Network transfers go through the gateway's bounded pool; every store and
    snapshot write happens on the calling thread. Each phase runs to
    completion even when some items fail, and the snapshot is only replaced
    when the whole pass succeeded.
    """

    def __init__(
        self,
        gateway: RemoteFileGateway,
        store: NoteStore,
        state_manager: SyncStateManager,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the executor.

        Args:
            gateway: Remote file gateway
            store: Local note store
            state_manager: Snapshot persistence
            progress_callback: Optional callback(phase, done, total)
        """
        self.gateway = gateway
        self.store = store
        self.state_manager = state_manager
        self.progress_callback = progress_callback

    def _report(self, phase: str, done: int, total: int) -> None:
        if self.progress_callback and total:
            self.progress_callback(phase, done, total)

    def execute(self, plan: SyncPlan) -> SyncResult:
        """Apply every action of the plan.

        Args:
            plan: Plan produced by SyncPlanner

        Returns:
            SyncResult with per-item failures and counts

        Raises:
            DriveAPIError: If the final listing for the snapshot fails
        """
        result = SyncResult(mode=plan.mode)
        result.stats["skips"] = plan.skipped

        uploads = list(plan.to_upload)
        remote_deletes = list(plan.to_delete_remote)

        self._download_phase(plan.to_download, uploads, remote_deletes, result)
        self._upload_phase(uploads, result)
        self._delete_remote_phase(remote_deletes, result)
        self._delete_local_phase(plan.to_hard_delete_local, result)

        if result.success:
            remote_files = self.gateway.list_files()
            result.snapshot = self.state_manager.save(remote_files, now_ms())
            logger.info(
                f"Sync pass ({plan.mode.value}) complete: {result.applied_count} "
                f"change(s) applied"
            )
        else:
            logger.warning(
                f"Sync pass ({plan.mode.value}) finished with "
                f"{len(result.failed_ids)} failure(s), snapshot not updated"
            )

        return result

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _download_phase(
        self,
        items: list[DownloadItem],
        uploads: list[UploadItem],
        remote_deletes: list[DeleteRemoteItem],
        result: SyncResult,
    ) -> None:
        if not items:
            return

        logger.debug(f"Download phase: {len(items)} item(s)")
        by_remote_id = {item.remote_file.remote_id: item for item in items}
        batch = self.gateway.download_many(list(by_remote_id))

        for remote_id in batch.failures:
            item = by_remote_id[remote_id]
            result.record_failure(item.note_id, batch.errors[remote_id])

        done = len(batch.failures)
        for remote_id, content in batch.contents.items():
            item = by_remote_id[remote_id]
            try:
                self._apply_download(item, content, uploads, remote_deletes, result)
            except (OSError, ValueError, DriveInvalidResponseError) as e:
                logger.error(f"Failed to apply download for {item.note_id}: {e}")
                result.record_failure(item.note_id, e)
            done += 1
            self._report("download", done, len(items))

    def _apply_download(
        self,
        item: DownloadItem,
        content: Any,
        uploads: list[UploadItem],
        remote_deletes: list[DeleteRemoteItem],
        result: SyncResult,
    ) -> None:
        """Resolve one downloaded note against its local copy (last write wins)."""
        try:
            remote_note = Note.from_dict(content)
        except ValueError as e:
            raise DriveInvalidResponseError(
                f"Invalid note content in {item.remote_file.name}: {e}"
            ) from e
        if remote_note.id != item.note_id:
            raise DriveInvalidResponseError(
                f"{item.remote_file.name} holds note {remote_note.id!r}"
            )

        local = item.local
        if local is None:
            if remote_note.is_deleted or remote_note.is_excluded:
                logger.debug(f"Not applying remote-only {item.note_id}")
                result.record("skips")
                return
            self.store.save(remote_note)
            result.record("downloads")
            return

        if remote_note.timestamp > local.timestamp:
            if remote_note.is_deleted:
                self.store.delete(item.note_id)
                result.record("deletes_local")
            elif remote_note.is_excluded:
                result.record("skips")
            else:
                self.store.save(remote_note)
                result.record("downloads")
        elif local.timestamp > remote_note.timestamp:
            remote_id = item.remote_file.remote_id
            if local.is_deleted:
                logger.debug(f"Local deletion of {item.note_id} is newer")
                remote_deletes.append(DeleteRemoteItem(item.note_id, remote_id))
            else:
                logger.debug(f"Local copy of {item.note_id} is newer")
                uploads.append(UploadItem(local, remote_id))
        else:
            result.record("skips")

    def _upload_phase(self, items: list[UploadItem], result: SyncResult) -> None:
        if not items:
            return

        logger.debug(f"Upload phase: {len(items)} item(s)")
        by_filename = {item.note.filename: item for item in items}
        requests = [
            UploadRequest(item.note.filename, item.note.to_dict(), item.remote_id)
            for item in items
        ]
        batch = self.gateway.upload_many(requests)

        for filename in batch.failures:
            result.record_failure(by_filename[filename].note_id, batch.errors[filename])
        for _ in batch.results:
            result.record("uploads")
        self._report("upload", len(items), len(items))

    def _delete_remote_phase(
        self, items: list[DeleteRemoteItem], result: SyncResult
    ) -> None:
        if not items:
            return

        logger.debug(f"Remote delete phase: {len(items)} item(s)")
        for done, item in enumerate(items, start=1):
            try:
                self.gateway.delete(item.remote_id)
            except DriveNotFoundError:
                logger.debug(f"Remote file for {item.note_id} already gone")
            except Exception as e:
                logger.error(f"Remote delete failed for {item.note_id}: {e}")
                result.record_failure(item.note_id, e)
                continue

            try:
                self.store.delete(item.note_id)
            except OSError as e:
                logger.error(f"Failed to purge tombstone {item.note_id}: {e}")
                result.record_failure(item.note_id, e)
                continue
            result.record("deletes_remote")
            self._report("delete_remote", done, len(items))

    def _delete_local_phase(self, note_ids: list[str], result: SyncResult) -> None:
        if not note_ids:
            return

        logger.debug(f"Local delete phase: {len(note_ids)} item(s)")
        for done, note_id in enumerate(note_ids, start=1):
            try:
                self.store.delete(note_id)
            except OSError as e:
                logger.error(f"Failed to purge {note_id}: {e}")
                result.record_failure(note_id, e)
                continue
            result.record("deletes_local")
            self._report("delete_local", done, len(note_ids))
