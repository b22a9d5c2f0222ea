"""API client for the Google Drive app-private folder."""

from __future__ import annotations

import json
import random
import time
import uuid
from typing import Any, Callable

import httpx

from .config import config
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveUploadError,
)
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE, DEFAULT_RETRY_DELAY

APP_DATA_FOLDER = "appDataFolder"
FILE_FIELDS = "id,name,modifiedTime"

TokenProvider = Callable[[], str]


class DriveClient:
    """Client for the Drive v3 REST API, scoped to ``appDataFolder``."""

    def __init__(
        self,
        token_provider: TokenProvider,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the Drive API client.

        Args:
            token_provider: Callable returning a valid bearer token. Called
                before every request; raises DriveAuthenticationError when
                re-authentication is required.
            api_url: Optional API base URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        if token_provider is None:
            raise DriveConfigError("A token provider is required")

        self.token_provider = token_provider
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _auth_headers(self) -> dict[str, str]:
        token = self.token_provider()
        if not token:
            raise DriveAuthenticationError("No access token available")
        return {"Authorization": f"Bearer {token}"}

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures only; auth/permission/not-found never retry
        return isinstance(exception, (DriveNetworkError, DriveRateLimitError))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to a memsync exception.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise DriveAuthenticationError("Unauthorized - access token expired") from e
        elif status_code == 403:
            # Drive reports quota exhaustion as 403 rateLimitExceeded
            if "rateLimitExceeded" in _safe_text(e.response):
                error = DriveRateLimitError("Rate limit exceeded")
                return (error, attempt < self.max_retries)
            raise DrivePermissionError("Access forbidden - check Drive scopes") from e
        elif status_code == 404:
            raise DriveNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = DriveRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)
        else:
            error_msg = f"Drive API request failed with status {status_code}"

            # Try to extract more details from response body
            try:
                if e.response.content:
                    error_data = e.response.json()
                    if isinstance(error_data, dict):
                        detail = error_data.get("error")
                        if isinstance(detail, dict):
                            detail = detail.get("message")
                        if detail:
                            error_msg = f"{error_msg}: {detail}"
            except ValueError:
                # Body is not JSON, keep the status-based message
                pass

            error = DriveAPIError(error_msg)
            should_retry = 500 <= status_code < 600 and attempt < self.max_retries
            return (error, should_retry)

    def _request(
        self,
        method: str,
        endpoint: str,
        extra_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path (relative to api_url)
            extra_headers: Headers sent in addition to Authorization
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty bodies)

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                headers = self._auth_headers()
                if extra_headers:
                    headers.update(extra_headers)
                response = client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()

                if not response.content:
                    return {}

                content_type = response.headers.get("Content-Type", "")
                if "text/html" in content_type:
                    # Login/consent pages come back as HTML
                    raise DriveAuthenticationError(
                        "Server returned HTML instead of JSON - reconnect Drive"
                    )
                try:
                    return response.json()
                except ValueError as e:
                    raise DriveInvalidResponseError(
                        f"Invalid JSON response from {endpoint}"
                    ) from e

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    delay = self._calculate_retry_delay(attempt)
                    if isinstance(error, DriveRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                    time.sleep(delay)
                    continue
                raise error from e
            except DriveAPIError:
                raise
            except httpx.RequestError as e:
                error = DriveNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise DriveAPIError("Request failed after all retry attempts")

    # =========================
    # File Operations
    # =========================

    def list_files(
        self,
        page_token: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Any:
        """List one page of non-trashed files in the app-private folder.

        Args:
            page_token: Token of the page to fetch (None for the first page)
            page_size: Number of files per page (max 1000)

        Returns:
            Dict with 'files' and, if more pages exist, 'nextPageToken'
        """
        params: dict[str, Any] = {
            "spaces": APP_DATA_FOLDER,
            "pageSize": page_size,
            "q": "trashed = false",
            "fields": f"nextPageToken,files({FILE_FIELDS})",
        }
        if page_token:
            params["pageToken"] = page_token
        return self._request("GET", "/drive/v3/files", params=params)

    def find_file_by_name(self, filename: str) -> dict[str, Any] | None:
        """Find a non-trashed file in the app-private folder by exact name.

        Args:
            filename: File name to look up (e.g. "abc.json")

        Returns:
            The Drive file resource, or None if no file has that name
        """
        escaped = filename.replace("\\", "\\\\").replace("'", "\\'")
        params = {
            "spaces": APP_DATA_FOLDER,
            "q": (
                f"name = '{escaped}' and '{APP_DATA_FOLDER}' in parents "
                "and trashed = false"
            ),
            "fields": f"files({FILE_FIELDS})",
        }
        result = self._request("GET", "/drive/v3/files", params=params)
        files = result.get("files") or []
        return files[0] if files else None

    def download_file_content(self, file_id: str) -> Any:
        """Download and parse the JSON content of a file.

        Args:
            file_id: Drive file id

        Returns:
            Parsed JSON content

        Raises:
            DriveDownloadError: If the content cannot be parsed
        """
        try:
            return self._request(
                "GET", f"/drive/v3/files/{file_id}", params={"alt": "media"}
            )
        except DriveInvalidResponseError as e:
            raise DriveDownloadError(f"Download failed for {file_id}: {e}") from e

    def upload_file(
        self,
        filename: str,
        content: Any,
        existing_file_id: str | None = None,
    ) -> dict[str, Any]:
        """Create or replace a JSON file in the app-private folder.

        Args:
            filename: File name (e.g. "abc.json")
            content: JSON-serializable content
            existing_file_id: Replace this file in place; omit to create

        Returns:
            File resource with 'id', 'name' and 'modifiedTime'
        """
        metadata: dict[str, Any] = {"name": filename, "mimeType": "application/json"}
        if not existing_file_id:
            metadata["parents"] = [APP_DATA_FOLDER]

        body, content_type = _multipart_related(metadata, content)
        params = {"uploadType": "multipart", "fields": FILE_FIELDS}
        headers = {"Content-Type": content_type}

        try:
            if existing_file_id:
                result = self._request(
                    "PATCH",
                    f"/upload/drive/v3/files/{existing_file_id}",
                    params=params,
                    content=body,
                    extra_headers=headers,
                )
            else:
                result = self._request(
                    "POST",
                    "/upload/drive/v3/files",
                    params=params,
                    content=body,
                    extra_headers=headers,
                )
        except (DriveAuthenticationError, DriveNetworkError):
            raise
        except DriveAPIError as e:
            raise DriveUploadError(f"Upload failed for {filename}: {e}") from e

        if not result.get("id"):
            raise DriveUploadError(f"Upload response for {filename} missing file id")
        return result

    def delete_file(self, file_id: str) -> None:
        """Permanently delete a file.

        Args:
            file_id: Drive file id
        """
        self._request("DELETE", f"/drive/v3/files/{file_id}")


def _safe_text(response: httpx.Response) -> str:
    try:
        return response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""


def _multipart_related(metadata: dict[str, Any], content: Any) -> tuple[bytes, str]:
    """Encode metadata and JSON content as a multipart/related body.

    Returns:
        Tuple of (body, Content-Type header value)
    """
    boundary = f"memsync-{uuid.uuid4().hex}"
    parts = [
        f"--{boundary}",
        "Content-Type: application/json; charset=UTF-8",
        "",
        json.dumps(metadata),
        f"--{boundary}",
        "Content-Type: application/json",
        "",
        json.dumps(content),
        f"--{boundary}--",
        "",
    ]
    body = "\r\n".join(parts).encode("utf-8")
    return body, f"multipart/related; boundary={boundary}"
