"""Reconciliation logic: decide what each sync pass has to do."""

import logging
from typing import Optional

from ..models import Note, RemoteFile, index_remote_files
from .modes import SyncMode
from .plan import SyncPlan
from .state import SyncSnapshot

logger = logging.getLogger(__name__)


class SyncPlanner:
    """Compares local notes with a remote listing and produces a SyncPlan.

    The planner never performs I/O. Conflicts between two existing copies
    are not decided here: both-sided ids are queued as downloads carrying the
    local note, and the executor compares timestamps once the remote content
    is known.
    """

    def plan(
        self,
        mode: SyncMode,
        local_notes: list[Note],
        remote_files: list[RemoteFile],
        snapshot: Optional[SyncSnapshot] = None,
    ) -> SyncPlan:
        """Build a plan for the given mode.

        Args:
            mode: Reconciliation mode
            local_notes: Every note in the local store, tombstones included
            remote_files: Complete remote listing
            snapshot: Previous snapshot (required for DELTA)

        Returns:
            SyncPlan for this pass
        """
        if mode == SyncMode.DELTA:
            if snapshot is None:
                raise ValueError("Delta reconciliation requires a snapshot")
            plan = self.plan_delta(local_notes, remote_files, snapshot)
        else:
            plan = self.plan_full(local_notes, remote_files)

        logger.debug(f"Sync plan: {plan.summary()}")
        return plan

    def plan_full(
        self, local_notes: list[Note], remote_files: list[RemoteFile]
    ) -> SyncPlan:
        """Compare every id present on either side.

        Args:
            local_notes: Every note in the local store
            remote_files: Complete remote listing

        Returns:
            SyncPlan in FULL mode
        """
        plan = SyncPlan(mode=SyncMode.FULL)
        local_map = self._index_local(local_notes)
        remote_map = self._index_remote(remote_files)

        for note_id in sorted(set(local_map) | set(remote_map)):
            local = local_map.get(note_id)
            remote = remote_map.get(note_id)

            if self._is_excluded(local, remote):
                plan.skipped += 1
                continue

            if local is not None and remote is not None:
                plan.add_download(remote, local)
            elif local is not None:
                if local.is_deleted:
                    # Nothing remote to delete, just purge the tombstone
                    plan.add_hard_delete_local(note_id)
                else:
                    plan.add_upload(local)
            elif remote is not None:
                plan.add_download(remote)

        return plan

    def plan_delta(
        self,
        local_notes: list[Note],
        remote_files: list[RemoteFile],
        snapshot: SyncSnapshot,
    ) -> SyncPlan:
        """Compare against the previous snapshot, skipping unchanged files.

        Args:
            local_notes: Every note in the local store
            remote_files: Complete remote listing
            snapshot: Snapshot from the last successful pass

        Returns:
            SyncPlan in DELTA mode
        """
        plan = SyncPlan(mode=SyncMode.DELTA)
        local_map = self._index_local(local_notes)
        remote_map = self._index_remote(remote_files)
        previous = snapshot.modified_times

        # Step 1: remote files that are new or changed since the snapshot
        for note_id in sorted(remote_map):
            remote = remote_map[note_id]
            local = local_map.get(note_id)
            if self._is_excluded(local, remote):
                if local is None:
                    plan.skipped += 1
                continue
            if previous.get(note_id) != remote.modified_time:
                logger.debug(f"Remote change detected for {note_id}")
                plan.add_download(remote, local)

        # Step 2: files that were in the snapshot but are gone remotely
        for note_id in sorted(previous):
            if note_id in remote_map:
                continue
            local = local_map.get(note_id)
            if local is None:
                continue
            if local.is_excluded:
                continue
            # Either the tombstone has fully propagated, or another device
            # deleted the note and that deletion wins
            logger.debug(f"Remote deletion detected for {note_id}")
            plan.add_hard_delete_local(note_id)

        # Step 3: local changes not already covered above
        for note_id in sorted(local_map):
            if plan.is_planned(note_id):
                continue
            local = local_map[note_id]
            if local.is_excluded:
                plan.skipped += 1
                continue

            remote = remote_map.get(note_id)
            if local.is_deleted:
                if remote is not None:
                    plan.add_delete_remote(note_id, remote.remote_id)
                else:
                    plan.add_hard_delete_local(note_id)
            elif local.timestamp > snapshot.last_sync_time:
                plan.add_upload(local, remote.remote_id if remote else None)
            elif remote is None and note_id not in previous:
                # Never seen remotely (e.g. imported with an old timestamp)
                plan.add_upload(local)
            else:
                plan.skipped += 1

        return plan

    def _index_local(self, notes: list[Note]) -> dict[str, Note]:
        return {note.id: note for note in notes}

    def _index_remote(self, remote_files: list[RemoteFile]) -> dict[str, RemoteFile]:
        return index_remote_files(remote_files)

    def _is_excluded(self, local: Optional[Note], remote: Optional[RemoteFile]) -> bool:
        """Sample, pending and errored notes are invisible to sync."""
        if local is not None:
            return local.is_excluded
        return remote is not None and remote.is_sample
