"""Tests for RemoteFileGateway pagination and batched transfers."""

import threading
import time
from unittest.mock import Mock

import pytest

from memsync.exceptions import DriveNetworkError, DriveUploadError
from memsync.file_gateway import RemoteFileGateway, UploadRequest
from memsync.models import Note


class TestListFiles:
    """Tests for paginated listing."""

    def test_single_page(self):
        """Test a listing without a next page token."""
        mock_client = Mock()
        mock_client.list_files.return_value = {
            "files": [{"id": "f1", "name": "n1.json", "modifiedTime": "t1"}]
        }
        gateway = RemoteFileGateway(mock_client)

        files = gateway.list_files()

        assert [f.remote_id for f in files] == ["f1"]
        mock_client.list_files.assert_called_once_with(page_token=None, page_size=1000)

    def test_follows_page_tokens(self, fake_client):
        """Test that all pages are concatenated."""
        for i in range(5):
            fake_client.put_note(Note(id=f"n{i}", timestamp=i))
        gateway = RemoteFileGateway(fake_client, page_size=2)

        files = gateway.list_files()

        assert {f.note_id for f in files} == {f"n{i}" for i in range(5)}
        assert fake_client.count_calls("list_files") == 3

    def test_empty_page_without_files_key(self):
        """Test a response that omits 'files'."""
        mock_client = Mock()
        mock_client.list_files.return_value = {}
        gateway = RemoteFileGateway(mock_client)

        assert gateway.list_files() == []

    def test_listing_error_propagates(self):
        """Test that a failed page aborts the whole listing."""
        mock_client = Mock()
        mock_client.list_files.side_effect = [
            {"files": [], "nextPageToken": "2"},
            DriveNetworkError("offline"),
        ]
        gateway = RemoteFileGateway(mock_client)

        with pytest.raises(DriveNetworkError):
            gateway.list_files()


class TestSingleOperations:
    """Tests for single-file operations."""

    def test_find_file(self, gateway, fake_client):
        """Test lookup by name."""
        fake_client.put_note(Note(id="n1", timestamp=1))

        found = gateway.find_file("n1.json")

        assert found is not None
        assert found.note_id == "n1"
        assert gateway.find_file("missing.json") is None

    def test_upload_returns_remote_file(self, gateway, fake_client):
        """Test that upload returns the stored file with its modified time."""
        remote = gateway.upload("n1.json", {"id": "n1", "timestamp": 1})

        assert remote.note_id == "n1"
        assert remote.modified_time
        assert fake_client.content_for("n1") == {"id": "n1", "timestamp": 1}

    def test_upload_fills_missing_name(self):
        """Test that the requested name is used when the response omits it."""
        mock_client = Mock()
        mock_client.upload_file.return_value = {"id": "f1", "modifiedTime": "t"}
        gateway = RemoteFileGateway(mock_client)

        remote = gateway.upload("n1.json", {})

        assert remote.name == "n1.json"

    def test_delete(self, gateway, fake_client):
        """Test deleting by remote id."""
        resource = fake_client.put_note(Note(id="n1", timestamp=1))

        gateway.delete(resource["id"])

        assert fake_client.note_ids() == set()


class TestBatchTransfers:
    """Tests for download_many / upload_many."""

    def test_download_many(self, gateway, fake_client):
        """Test that every requested file is returned by remote id."""
        ids = [
            fake_client.put_note(Note(id=f"n{i}", timestamp=i))["id"] for i in range(4)
        ]

        batch = gateway.download_many(ids)

        assert set(batch.contents) == set(ids)
        assert batch.failures == []

    def test_download_many_partial_failure(self, gateway, fake_client):
        """Test that one failure does not abort the batch."""
        ok = fake_client.put_note(Note(id="ok", timestamp=1))["id"]
        bad = fake_client.put_note(Note(id="bad", timestamp=1))["id"]
        fake_client.fail_downloads[bad] = DriveNetworkError("reset")

        batch = gateway.download_many([ok, bad])

        assert list(batch.contents) == [ok]
        assert batch.failures == [bad]
        assert isinstance(batch.errors[bad], DriveNetworkError)

    def test_download_many_empty(self, gateway, fake_client):
        """Test that an empty batch makes no calls."""
        batch = gateway.download_many([])

        assert batch.contents == {}
        assert fake_client.calls == []

    def test_upload_many_partial_failure(self, gateway, fake_client):
        """Test per-item upload failures."""
        fake_client.fail_uploads["bad.json"] = DriveUploadError("rejected")

        batch = gateway.upload_many(
            [
                UploadRequest("ok.json", {"id": "ok", "timestamp": 1}),
                UploadRequest("bad.json", {"id": "bad", "timestamp": 1}),
            ]
        )

        assert list(batch.results) == ["ok.json"]
        assert batch.results["ok.json"].note_id == "ok"
        assert batch.failures == ["bad.json"]
        assert fake_client.note_ids() == {"ok"}

    def test_upload_many_updates_in_place(self, gateway, fake_client):
        """Test that existing_remote_id replaces the file."""
        resource = fake_client.put_note(Note(id="n1", timestamp=1))

        batch = gateway.upload_many(
            [UploadRequest("n1.json", {"id": "n1", "timestamp": 2}, resource["id"])]
        )

        assert batch.results["n1.json"].remote_id == resource["id"]
        assert len(fake_client.files) == 1
        assert fake_client.content_for("n1")["timestamp"] == 2

    @pytest.mark.parametrize("max_workers", [1, 3, 6])
    def test_concurrency_is_bounded(self, max_workers):
        """Test that no more than max_workers transfers run at once."""
        lock = threading.Lock()
        active = 0
        peak = 0

        def slow_download(file_id):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1
            return {"id": file_id, "timestamp": 1}

        mock_client = Mock()
        mock_client.download_file_content.side_effect = slow_download
        gateway = RemoteFileGateway(mock_client, max_workers=max_workers)

        batch = gateway.download_many([f"f{i}" for i in range(20)])

        assert len(batch.contents) == 20
        assert peak <= max_workers
