"""Sync controller: debounced triggers, the in-flight guard and error mapping."""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from ..exceptions import (
    DriveAuthenticationError,
    DriveNetworkError,
    DriveNotFoundError,
    SyncError,
)
from ..file_gateway import RemoteFileGateway
from ..models import Note
from ..store import NoteStore
from ..utils import DEFAULT_DEBOUNCE_SECONDS
from .executor import SyncExecutor, SyncResult
from .modes import SyncMode
from .planner import SyncPlanner
from .state import SyncStateManager

logger = logging.getLogger(__name__)

AUTH_ERROR_MESSAGE = "Authentication expired. Please reconnect Drive."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection."
GENERIC_ERROR_MESSAGE = "Sync failed"
SINGLE_NOTE_ERROR_MESSAGE = "Failed to save changes to Drive."


class SyncStatus(str, Enum):
    """Lifecycle of the controller."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RUNNING = "running"


class SyncErrorCategory(str, Enum):
    """User-facing error categories, in increasing order of severity."""

    GENERIC = "generic"
    NETWORK = "network"
    AUTH = "auth"


_SEVERITY = {
    SyncErrorCategory.GENERIC: 0,
    SyncErrorCategory.NETWORK: 1,
    SyncErrorCategory.AUTH: 2,
}


@dataclass(frozen=True)
class SyncErrorInfo:
    """Last error surfaced to the user."""

    category: SyncErrorCategory
    message: str


def classify_error(
    error: Exception, generic_message: str = GENERIC_ERROR_MESSAGE
) -> SyncErrorInfo:
    """Map an exception to a user-facing error.

    Args:
        error: Exception raised by a sync pass or single-note sync
        generic_message: Message for errors that are neither auth nor network

    Returns:
        SyncErrorInfo with category and message
    """
    if isinstance(error, SyncError) and error.result is not None:
        return classify_errors(error.result.errors.values(), generic_message)
    if isinstance(error, DriveAuthenticationError):
        return SyncErrorInfo(SyncErrorCategory.AUTH, AUTH_ERROR_MESSAGE)
    if isinstance(error, DriveNetworkError):
        return SyncErrorInfo(SyncErrorCategory.NETWORK, NETWORK_ERROR_MESSAGE)
    return SyncErrorInfo(SyncErrorCategory.GENERIC, generic_message)


def classify_errors(
    errors: Iterable[Exception], generic_message: str = GENERIC_ERROR_MESSAGE
) -> SyncErrorInfo:
    """Pick the most severe classification among several item failures."""
    worst = SyncErrorInfo(SyncErrorCategory.GENERIC, generic_message)
    for error in errors:
        info = classify_error(error, generic_message)
        if _SEVERITY[info.category] > _SEVERITY[worst.category]:
            worst = info
    return worst


class SyncController:
    """Coordinates sync passes for one session.

    Triggers are debounced: a burst of ``sync()`` calls within the debounce
    window collapses into a single pass. While a pass runs, further triggers
    are dropped. ``sync_file`` pushes a single note outside of a full pass.

    Example:
        >>> controller = SyncController(gateway, store, state, token_provider)
        >>> future = controller.sync()
        >>> result = future.result(timeout=30)
    """

    def __init__(
        self,
        gateway: RemoteFileGateway,
        store: NoteStore,
        state_manager: SyncStateManager,
        token_provider: Callable[[], str],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        is_linked: Optional[Callable[[], bool]] = None,
        on_synced: Optional[Callable[[SyncResult], None]] = None,
        planner: Optional[SyncPlanner] = None,
    ):
        """Initialize the controller.

        Args:
            gateway: Remote file gateway
            store: Local note store
            state_manager: Snapshot persistence
            token_provider: Returns a valid access token or raises
                DriveAuthenticationError
            debounce_seconds: Delay before a triggered pass starts
            is_linked: Returns False when no remote account is connected
            on_synced: Called after every successful pass
            planner: Reconciliation planner
        """
        self.gateway = gateway
        self.store = store
        self.state_manager = state_manager
        self.token_provider = token_provider
        self.debounce_seconds = debounce_seconds
        self.is_linked = is_linked or (lambda: True)
        self.on_synced = on_synced
        self.planner = planner or SyncPlanner()
        self.executor = SyncExecutor(gateway, store, state_manager)

        self._lock = threading.Lock()
        self._status = SyncStatus.IDLE
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._pending: Optional[Future] = None
        self._pending_full = False
        self._last_error: Optional[SyncErrorInfo] = None
        self._last_result: Optional[SyncResult] = None

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            return self._status

    @property
    def is_syncing(self) -> bool:
        return self.status == SyncStatus.RUNNING

    @property
    def last_error(self) -> Optional[SyncErrorInfo]:
        return self._last_error

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    def sync(self, force_full: bool = False) -> Optional[Future]:
        """Schedule a debounced sync pass.

        Args:
            force_full: Ignore the snapshot and reconcile every note

        Returns:
            Future resolving to the pass's SyncResult, shared by every trigger
            of the same burst. None if not linked or a pass is running.
        """
        if not self.is_linked():
            logger.debug("Not linked, ignoring sync trigger")
            return None

        with self._lock:
            if self._status == SyncStatus.RUNNING:
                logger.debug("Sync already running, dropping trigger")
                return None

            if self._timer is not None:
                self._timer.cancel()
            if self._pending is None:
                self._pending = Future()
            self._pending_full = self._pending_full or force_full
            self._status = SyncStatus.DEBOUNCING
            self._schedule()
            return self._pending

    def _schedule(self) -> None:
        """Start a debounce timer. The caller holds the lock."""
        self._generation += 1
        self._timer = threading.Timer(
            self.debounce_seconds, self._on_timer, args=(self._generation,)
        )
        self._timer.daemon = True
        self._timer.start()

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # A later trigger, sync_now or close superseded this timer
            if generation != self._generation:
                return
            if self._status != SyncStatus.DEBOUNCING:
                # sync_file holds the slot and reschedules when it is done
                self._timer = None
                return
            future = self._pending
            force_full = self._pending_full
            self._timer = None
            self._pending = None
            self._pending_full = False
            self._status = SyncStatus.RUNNING

        try:
            result = self._run_pass(force_full)
        except Exception as e:
            if future is not None:
                future.set_exception(e)
            return
        if future is not None:
            future.set_result(result)

    def sync_now(self, force_full: bool = False) -> Optional[SyncResult]:
        """Run a sync pass immediately in the calling thread.

        A pending debounced pass is folded into this one and its future
        receives this pass's result.

        Args:
            force_full: Ignore the snapshot and reconcile every note

        Returns:
            SyncResult, or None if not linked or a pass is already running

        Raises:
            MemSyncError: If the pass could not run at all (auth, listing)
        """
        if not self.is_linked():
            logger.debug("Not linked, skipping sync")
            return None

        with self._lock:
            if self._status == SyncStatus.RUNNING:
                logger.debug("Sync already running, skipping")
                return None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            future = self._pending
            force_full = force_full or self._pending_full
            self._pending = None
            self._pending_full = False
            self._status = SyncStatus.RUNNING

        try:
            result = self._run_pass(force_full)
        except Exception as e:
            if future is not None:
                future.set_exception(e)
            raise
        if future is not None:
            future.set_result(result)
        return result

    def _run_pass(self, force_full: bool) -> SyncResult:
        """Plan and execute one pass. The caller has set status to RUNNING."""
        try:
            self.token_provider()

            snapshot = None if force_full else self.state_manager.load()
            mode = SyncMode.DELTA if snapshot is not None else SyncMode.FULL
            logger.debug(f"Starting {mode.value} sync pass")

            local_notes = self.store.get_all()
            remote_files = self.gateway.list_files()
            plan = self.planner.plan(mode, local_notes, remote_files, snapshot)
            result = self.executor.execute(plan)

            self._last_result = result
            if result.success:
                self._last_error = None
            else:
                self._last_error = classify_errors(result.errors.values())
        except Exception as e:
            self._last_error = classify_error(e)
            logger.error(f"Sync pass failed: {e}")
            raise
        finally:
            with self._lock:
                self._status = SyncStatus.IDLE

        if result.success and self.on_synced is not None:
            try:
                self.on_synced(result)
            except Exception as e:
                logger.error(f"on_synced callback failed: {e}")

        return result

    def sync_file(self, note: Note) -> bool:
        """Push a single note to the remote outside of a full pass.

        A tombstone deletes the remote file and purges the local record; a
        live note creates or replaces its remote file.

        Args:
            note: Note as currently stored locally

        Returns:
            True if the note was synced, False if skipped (not linked,
            excluded, or a pass is in progress)

        Raises:
            MemSyncError: If the remote operation fails
        """
        if not self.is_linked():
            return False
        if note.is_excluded:
            logger.debug(f"Not syncing excluded note {note.id}")
            return False

        with self._lock:
            if self._status == SyncStatus.RUNNING:
                logger.debug(f"Sync running, skipping {note.id}")
                return False
            resume = self._status
            self._status = SyncStatus.RUNNING

        try:
            self.token_provider()
            remote = self.gateway.find_file(note.filename)

            if note.is_deleted:
                if remote is not None:
                    try:
                        self.gateway.delete(remote.remote_id)
                    except DriveNotFoundError:
                        logger.debug(f"Remote file for {note.id} already gone")
                self.store.delete(note.id)
                self.state_manager.remove_entry(note.id)
                logger.info(f"Deleted note {note.id} remotely")
            else:
                stored = self.gateway.upload(
                    note.filename,
                    note.to_dict(),
                    remote.remote_id if remote is not None else None,
                )
                self.state_manager.update_entry(note.id, stored.modified_time)
                logger.info(f"Uploaded note {note.id}")

            self._last_error = None
            return True
        except Exception as e:
            self._last_error = classify_error(e, SINGLE_NOTE_ERROR_MESSAGE)
            logger.error(f"Failed to sync note {note.id}: {e}")
            raise
        finally:
            with self._lock:
                if resume == SyncStatus.DEBOUNCING and self._pending is not None:
                    self._status = SyncStatus.DEBOUNCING
                    if self._timer is None:
                        self._schedule()
                else:
                    self._status = SyncStatus.IDLE

    def close(self) -> None:
        """Cancel any pending debounced pass."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self._pending_full = False
            if self._status == SyncStatus.DEBOUNCING:
                self._status = SyncStatus.IDLE
