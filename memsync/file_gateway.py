"""Remote file gateway with automatic pagination and bounded batch transfers."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Optional

from .api import DriveClient
from .models import RemoteFile
from .utils import DEFAULT_BATCH_CONCURRENCY, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)


@dataclass
class UploadRequest:
    """One item of a batched upload."""

    filename: str
    content: Any
    existing_remote_id: Optional[str] = None
    """Replace this remote file in place; None creates a new file"""


@dataclass
class DownloadBatchResult:
    """Outcome of a batched download. Never raised, always returned."""

    contents: dict[str, Any] = field(default_factory=dict)
    """remote_id -> parsed JSON content, for successful downloads"""

    failures: list[str] = field(default_factory=list)
    """remote_ids that could not be downloaded"""

    errors: dict[str, Exception] = field(default_factory=dict)
    """remote_id -> exception, for failed downloads"""


@dataclass
class UploadBatchResult:
    """Outcome of a batched upload. Never raised, always returned."""

    results: dict[str, RemoteFile] = field(default_factory=dict)
    """filename -> remote file as stored, for successful uploads"""

    failures: list[str] = field(default_factory=list)
    """filenames that could not be uploaded"""

    errors: dict[str, Exception] = field(default_factory=dict)
    """filename -> exception, for failed uploads"""


class RemoteFileGateway:
    """Wraps the Drive client with the operations the sync engine needs.

    Batched variants run at most ``max_workers`` transfers at a time and
    report per-item failures instead of raising, so one bad note never
    aborts the rest of a batch.
    """

    def __init__(
        self,
        client: DriveClient,
        max_workers: int = DEFAULT_BATCH_CONCURRENCY,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize the gateway.

        Args:
            client: Drive API client
            max_workers: Concurrent transfers in batched calls (default: 6)
            page_size: Files per listing page
        """
        self.client = client
        self.max_workers = max(1, max_workers)
        self.page_size = page_size

    def list_files(self) -> list[RemoteFile]:
        """List every non-trashed file in the app-private folder.

        Pages are fetched until the server stops returning a page token.
        Errors propagate: a partial listing would look like remote deletions.

        Returns:
            All remote files
        """
        all_files: list[RemoteFile] = []
        page_token: Optional[str] = None
        page_num = 0

        while True:
            page_num += 1
            result = self.client.list_files(
                page_token=page_token, page_size=self.page_size
            )
            files = result.get("files") or []
            all_files.extend(RemoteFile.from_api_response(f) for f in files)

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(all_files)} remote file(s) in {page_num} page(s)")
        return all_files

    def find_file(self, filename: str) -> Optional[RemoteFile]:
        """Look up a remote file by name.

        Args:
            filename: File name (e.g. "abc.json")

        Returns:
            RemoteFile if found, None otherwise
        """
        data = self.client.find_file_by_name(filename)
        return RemoteFile.from_api_response(data) if data else None

    def download(self, remote_id: str) -> Any:
        """Download the JSON content of one file."""
        return self.client.download_file_content(remote_id)

    def upload(
        self,
        filename: str,
        content: Any,
        existing_remote_id: Optional[str] = None,
    ) -> RemoteFile:
        """Create or replace one file.

        Args:
            filename: File name
            content: JSON-serializable content
            existing_remote_id: Remote id to replace; None creates a new file

        Returns:
            The remote file as stored, with its new modified time
        """
        data = self.client.upload_file(filename, content, existing_remote_id)
        remote = RemoteFile.from_api_response(data)
        if not remote.name:
            remote.name = filename
        return remote

    def delete(self, remote_id: str) -> None:
        """Delete one file by remote id."""
        self.client.delete_file(remote_id)

    def download_many(self, remote_ids: list[str]) -> DownloadBatchResult:
        """Download several files with bounded concurrency.

        Args:
            remote_ids: Remote ids to fetch

        Returns:
            DownloadBatchResult with contents and per-item failures
        """
        batch = DownloadBatchResult()
        if not remote_ids:
            return batch

        logger.debug(
            f"Downloading {len(remote_ids)} file(s) with {self.max_workers} workers"
        )

        def download_with_timing(remote_id: str) -> tuple[str, Any, float]:
            start = time.time()
            content = self.download(remote_id)
            return remote_id, content, time.time() - start

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(download_with_timing, remote_id): remote_id
                for remote_id in remote_ids
            }

            for future in as_completed(futures):
                remote_id = futures[future]
                try:
                    _, content, elapsed = future.result()
                    batch.contents[remote_id] = content
                    logger.debug(f"Downloaded {remote_id} in {elapsed:.2f}s")
                except Exception as e:
                    logger.error(f"Download failed for {remote_id}: {e}")
                    batch.failures.append(remote_id)
                    batch.errors[remote_id] = e

        return batch

    def upload_many(self, items: list[UploadRequest]) -> UploadBatchResult:
        """Upload several files with bounded concurrency.

        Args:
            items: Files to create or replace

        Returns:
            UploadBatchResult with stored files and per-item failures
        """
        batch = UploadBatchResult()
        if not items:
            return batch

        logger.debug(f"Uploading {len(items)} file(s) with {self.max_workers} workers")

        def upload_with_timing(item: UploadRequest) -> tuple[RemoteFile, float]:
            start = time.time()
            remote = self.upload(item.filename, item.content, item.existing_remote_id)
            return remote, time.time() - start

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(upload_with_timing, item): item for item in items
            }

            for future in as_completed(futures):
                item = futures[future]
                try:
                    remote, elapsed = future.result()
                    batch.results[item.filename] = remote
                    action = "Updated" if item.existing_remote_id else "Created"
                    logger.debug(f"{action} {item.filename} in {elapsed:.2f}s")
                except Exception as e:
                    logger.error(f"Upload failed for {item.filename}: {e}")
                    batch.failures.append(item.filename)
                    batch.errors[item.filename] = e

        return batch
