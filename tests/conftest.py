"""Shared fixtures: an in-memory Drive client and real sync components."""

import itertools
import threading
from pathlib import Path
from typing import Any, Optional

import pytest

from memsync.exceptions import DriveNotFoundError
from memsync.file_gateway import RemoteFileGateway
from memsync.models import Note
from memsync.store import JsonNoteStore
from memsync.sync import SyncController, SyncStateManager


class FakeDriveClient:
    """In-memory stand-in for DriveClient with the same method surface.

    Every write bumps a revision counter so modifiedTime changes like the
    real service. ``fail_*`` maps let tests inject per-item errors.
    """

    def __init__(self):
        self.files: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.fail_downloads: dict[str, Exception] = {}
        self.fail_uploads: dict[str, Exception] = {}
        self.fail_deletes: dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None
        self._lock = threading.Lock()
        self._revision = itertools.count(1)
        self._ids = itertools.count(1)

    def _modified_time(self) -> str:
        rev = next(self._revision)
        return f"2024-01-01T{rev // 3600:02d}:{rev // 60 % 60:02d}:{rev % 60:02d}.000Z"

    def _resource(self, entry: dict[str, Any]) -> dict[str, Any]:
        return {k: entry[k] for k in ("id", "name", "modifiedTime")}

    # Helpers for tests

    def put_note(self, note: Note) -> dict[str, Any]:
        """Store a note as if another device uploaded it."""
        existing = self.file_id_for(note.id)
        return self.upload_file(note.filename, note.to_dict(), existing)

    def file_id_for(self, note_id: str) -> Optional[str]:
        for entry in self.files.values():
            if entry["name"] == f"{note_id}.json":
                return entry["id"]
        return None

    def content_for(self, note_id: str) -> Optional[dict[str, Any]]:
        file_id = self.file_id_for(note_id)
        return self.files[file_id]["content"] if file_id else None

    def note_ids(self) -> set[str]:
        return {entry["name"][: -len(".json")] for entry in self.files.values()}

    def count_calls(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # DriveClient surface

    def list_files(self, page_token=None, page_size=1000):
        with self._lock:
            self.calls.append(("list_files", page_token))
            if self.list_error is not None:
                raise self.list_error
            entries = sorted(self.files.values(), key=lambda e: e["id"])
            offset = int(page_token or 0)
            page = entries[offset : offset + page_size]
            result: dict[str, Any] = {"files": [self._resource(e) for e in page]}
            if offset + page_size < len(entries):
                result["nextPageToken"] = str(offset + page_size)
            return result

    def find_file_by_name(self, filename):
        with self._lock:
            self.calls.append(("find_file_by_name", filename))
            for entry in self.files.values():
                if entry["name"] == filename:
                    return self._resource(entry)
            return None

    def download_file_content(self, file_id):
        with self._lock:
            self.calls.append(("download_file_content", file_id))
            if file_id in self.fail_downloads:
                raise self.fail_downloads[file_id]
            if file_id not in self.files:
                raise DriveNotFoundError("Resource not found")
            return self.files[file_id]["content"]

    def upload_file(self, filename, content, existing_file_id=None):
        with self._lock:
            self.calls.append(("upload_file", filename))
            if filename in self.fail_uploads:
                raise self.fail_uploads[filename]
            if existing_file_id:
                if existing_file_id not in self.files:
                    raise DriveNotFoundError("Resource not found")
                file_id = existing_file_id
            else:
                file_id = f"file-{next(self._ids)}"
            entry = {
                "id": file_id,
                "name": filename,
                "modifiedTime": self._modified_time(),
                "content": content,
            }
            self.files[file_id] = entry
            return self._resource(entry)

    def delete_file(self, file_id):
        with self._lock:
            self.calls.append(("delete_file", file_id))
            if file_id in self.fail_deletes:
                raise self.fail_deletes[file_id]
            if file_id not in self.files:
                raise DriveNotFoundError("Resource not found")
            del self.files[file_id]

    def close(self):
        pass


class Device:
    """One installation: its own store and snapshot, sharing the remote."""

    def __init__(self, root: Path, client: FakeDriveClient, debounce: float = 0.05):
        self.store = JsonNoteStore(root / "notes")
        self.state = SyncStateManager(root / "state", api_url="https://fake.drive")
        self.gateway = RemoteFileGateway(client, max_workers=6)
        self.controller = SyncController(
            self.gateway,
            self.store,
            self.state,
            token_provider=lambda: "test-token",
            debounce_seconds=debounce,
        )

    def note_ids(self) -> set[str]:
        return {n.id for n in self.store.get_all()}


@pytest.fixture
def fake_client():
    """Provide an empty in-memory Drive."""
    return FakeDriveClient()


@pytest.fixture
def gateway(fake_client):
    """Provide a gateway over the in-memory Drive."""
    return RemoteFileGateway(fake_client, max_workers=6)


@pytest.fixture
def store(tmp_path):
    """Provide an empty note store."""
    return JsonNoteStore(tmp_path / "notes")


@pytest.fixture
def state_manager(tmp_path):
    """Provide a snapshot manager in a temporary directory."""
    return SyncStateManager(tmp_path / "state", api_url="https://fake.drive")


@pytest.fixture
def device(tmp_path, fake_client):
    """Provide a device wired to the in-memory Drive."""
    return Device(tmp_path / "device-a", fake_client)


@pytest.fixture
def other_device(tmp_path, fake_client):
    """Provide a second device sharing the same Drive."""
    return Device(tmp_path / "device-b", fake_client)
