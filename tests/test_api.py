"""Unit tests for the Drive API client."""

import json
from unittest.mock import patch

import httpx
import pytest

from memsync.api import DriveClient
from memsync.exceptions import (
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

API_URL = "https://drive.test"


def make_client(handler, max_retries=3, token="test-token"):
    """Create a DriveClient whose HTTP layer is served by ``handler``."""
    client = DriveClient(lambda: token, api_url=API_URL, max_retries=max_retries)
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


class Recorder:
    """Request handler replaying a list of responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, Exception):
            raise response
        # Fresh copy so one canned response can serve several attempts
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content
        )


class TestDriveClientInit:
    """Tests for DriveClient initialization."""

    def test_init_with_custom_api_url(self):
        """Test that a trailing slash is stripped from the API URL."""
        client = DriveClient(lambda: "t", api_url="https://custom.api/")
        assert client.api_url == "https://custom.api"

    def test_init_without_token_provider_raises(self):
        """Test that a token provider is mandatory."""
        with pytest.raises(DriveConfigError):
            DriveClient(None)

    def test_close_is_idempotent(self):
        """Test closing twice."""
        client = make_client(Recorder(httpx.Response(200, json={})))
        client.close()
        client.close()


class TestAuthHeaders:
    """Tests for bearer token handling."""

    def test_token_sent_on_every_request(self):
        """Test that the token provider is consulted per request."""
        tokens = iter(["first", "second"])
        handler = Recorder(httpx.Response(200, json={"files": []}))
        client = DriveClient(lambda: next(tokens), api_url=API_URL)
        client._client = httpx.Client(transport=httpx.MockTransport(handler))

        client.list_files()
        client.list_files()

        assert handler.requests[0].headers["Authorization"] == "Bearer first"
        assert handler.requests[1].headers["Authorization"] == "Bearer second"

    def test_empty_token_raises_auth_error(self):
        """Test that an empty token fails before any request."""
        handler = Recorder(httpx.Response(200, json={}))
        client = make_client(handler, token="")

        with pytest.raises(DriveAuthenticationError):
            client.list_files()
        assert handler.requests == []

    def test_token_provider_error_propagates(self):
        """Test that a failing token provider surfaces as-is."""

        def provider():
            raise DriveAuthenticationError("reconnect")

        client = DriveClient(provider, api_url=API_URL)
        client._client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
        )

        with pytest.raises(DriveAuthenticationError, match="reconnect"):
            client.list_files()


class TestErrorMapping:
    """Tests for HTTP status mapping and retries."""

    def test_401_maps_to_auth_error_without_retry(self):
        """Test that 401 is never retried."""
        handler = Recorder(httpx.Response(401))
        client = make_client(handler)

        with pytest.raises(DriveAuthenticationError):
            client.list_files()
        assert len(handler.requests) == 1

    def test_403_maps_to_permission_error(self):
        """Test a plain 403."""
        handler = Recorder(httpx.Response(403, json={"error": "forbidden"}))
        client = make_client(handler)

        with pytest.raises(DrivePermissionError):
            client.list_files()
        assert len(handler.requests) == 1

    @patch("memsync.api.time.sleep")
    def test_403_rate_limit_is_retried(self, mock_sleep):
        """Test that Drive's 403 rateLimitExceeded is treated as throttling."""
        body = {"error": {"errors": [{"reason": "rateLimitExceeded"}]}}
        handler = Recorder(httpx.Response(403, json=body))
        client = make_client(handler, max_retries=2)

        with pytest.raises(DriveRateLimitError):
            client.list_files()
        assert len(handler.requests) == 3
        assert mock_sleep.call_count == 2

    def test_404_maps_to_not_found(self):
        """Test a 404."""
        client = make_client(Recorder(httpx.Response(404)))

        with pytest.raises(DriveNotFoundError):
            client.delete_file("gone")

    @patch("memsync.api.time.sleep")
    def test_5xx_retried_then_succeeds(self, mock_sleep):
        """Test recovery from a transient server error."""
        handler = Recorder(
            httpx.Response(503),
            httpx.Response(200, json={"files": [{"id": "f1"}]}),
        )
        client = make_client(handler)

        result = client.list_files()

        assert result == {"files": [{"id": "f1"}]}
        assert len(handler.requests) == 2
        mock_sleep.assert_called_once()

    @patch("memsync.api.time.sleep")
    def test_5xx_exhausts_retries(self, mock_sleep):
        """Test that the error message carries the server detail."""
        body = {"error": {"message": "backend exploded"}}
        handler = Recorder(httpx.Response(500, json=body))
        client = make_client(handler, max_retries=1)

        with pytest.raises(DriveAPIError, match="backend exploded"):
            client.list_files()
        assert len(handler.requests) == 2

    @patch("memsync.api.time.sleep")
    def test_429_honours_retry_after(self, mock_sleep):
        """Test that Retry-After overrides the backoff delay."""
        handler = Recorder(
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200, json={}),
        )
        client = make_client(handler)

        client.list_files()

        mock_sleep.assert_called_once_with(2.0)

    @patch("memsync.api.time.sleep")
    def test_network_error_retried(self, mock_sleep):
        """Test that transport failures are retried then mapped."""
        handler = Recorder(httpx.ConnectError("connection refused"))
        client = make_client(handler, max_retries=2)

        with pytest.raises(DriveNetworkError):
            client.list_files()
        assert len(handler.requests) == 3

    def test_html_response_maps_to_auth_error(self):
        """Test that a login page is treated as expired auth."""
        handler = Recorder(
            httpx.Response(
                200, text="<html>login</html>", headers={"Content-Type": "text/html"}
            )
        )
        client = make_client(handler)

        with pytest.raises(DriveAuthenticationError):
            client.list_files()

    def test_invalid_json(self):
        """Test a body that is not JSON."""
        handler = Recorder(
            httpx.Response(
                200, content=b"not json", headers={"Content-Type": "application/json"}
            )
        )
        client = make_client(handler)

        with pytest.raises(DriveInvalidResponseError):
            client.list_files()


class TestCalculateRetryDelay:
    """Tests for exponential backoff."""

    def test_delay_grows_with_jitter(self):
        """Test that delays double per attempt within +/- 25%."""
        client = DriveClient(lambda: "t", api_url=API_URL, retry_delay=1.0)

        for attempt, base in [(0, 1.0), (1, 2.0), (2, 4.0)]:
            delay = client._calculate_retry_delay(attempt)
            assert base * 0.75 <= delay <= base * 1.25


class TestFileOperations:
    """Tests for the file endpoints."""

    def test_list_files_params(self):
        """Test the listing query."""
        handler = Recorder(httpx.Response(200, json={"files": []}))
        client = make_client(handler)

        client.list_files(page_token="tok", page_size=50)

        request = handler.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/drive/v3/files"
        assert request.url.params["spaces"] == "appDataFolder"
        assert request.url.params["q"] == "trashed = false"
        assert request.url.params["pageSize"] == "50"
        assert request.url.params["pageToken"] == "tok"
        assert "nextPageToken" in request.url.params["fields"]

    def test_find_file_by_name(self):
        """Test lookup by exact name."""
        handler = Recorder(
            httpx.Response(200, json={"files": [{"id": "f1", "name": "n1.json"}]})
        )
        client = make_client(handler)

        result = client.find_file_by_name("n1.json")

        assert result == {"id": "f1", "name": "n1.json"}
        assert "name = 'n1.json'" in handler.requests[0].url.params["q"]

    def test_find_file_by_name_missing(self):
        """Test lookup with no match."""
        client = make_client(Recorder(httpx.Response(200, json={"files": []})))
        assert client.find_file_by_name("n1.json") is None

    def test_download_file_content(self):
        """Test downloading JSON content."""
        handler = Recorder(httpx.Response(200, json={"id": "n1", "timestamp": 1}))
        client = make_client(handler)

        content = client.download_file_content("f1")

        assert content == {"id": "n1", "timestamp": 1}
        assert handler.requests[0].url.path == "/drive/v3/files/f1"
        assert handler.requests[0].url.params["alt"] == "media"

    def test_download_invalid_content(self):
        """Test that unparsable content is a download error."""
        handler = Recorder(
            httpx.Response(
                200, content=b"{broken", headers={"Content-Type": "application/json"}
            )
        )
        client = make_client(handler)

        with pytest.raises(DriveDownloadError):
            client.download_file_content("f1")

    def test_upload_creates_in_app_folder(self):
        """Test multipart create."""
        resource = {"id": "f1", "name": "n1.json", "modifiedTime": "t1"}
        handler = Recorder(httpx.Response(200, json=resource))
        client = make_client(handler)

        result = client.upload_file("n1.json", {"id": "n1", "timestamp": 1})

        request = handler.requests[0]
        assert result == resource
        assert request.method == "POST"
        assert request.url.path == "/upload/drive/v3/files"
        assert request.url.params["uploadType"] == "multipart"
        content_type = request.headers["Content-Type"]
        assert content_type.startswith("multipart/related; boundary=")
        body = request.read()
        assert b'"parents": ["appDataFolder"]' in body
        assert json.dumps({"id": "n1", "timestamp": 1}).encode() in body

    def test_upload_replaces_existing(self):
        """Test multipart update by file id."""
        resource = {"id": "f1", "name": "n1.json", "modifiedTime": "t2"}
        handler = Recorder(httpx.Response(200, json=resource))
        client = make_client(handler)

        client.upload_file("n1.json", {"id": "n1"}, existing_file_id="f1")

        request = handler.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/upload/drive/v3/files/f1"
        assert b"appDataFolder" not in request.read()

    def test_upload_without_id_in_response(self):
        """Test that a response without a file id is an upload error."""
        client = make_client(Recorder(httpx.Response(200, json={"name": "n1.json"})))

        with pytest.raises(DriveUploadError, match="missing file id"):
            client.upload_file("n1.json", {"id": "n1"})

    def test_upload_server_error_wrapped(self):
        """Test that API failures become upload errors."""
        client = make_client(Recorder(httpx.Response(400)), max_retries=0)

        with pytest.raises(DriveUploadError):
            client.upload_file("n1.json", {"id": "n1"})

    def test_upload_auth_error_not_wrapped(self):
        """Test that auth failures keep their type."""
        client = make_client(Recorder(httpx.Response(401)))

        with pytest.raises(DriveAuthenticationError):
            client.upload_file("n1.json", {"id": "n1"})

    def test_delete_file(self):
        """Test delete with an empty 204 response."""
        handler = Recorder(httpx.Response(204))
        client = make_client(handler)

        assert client.delete_file("f1") is None
        assert handler.requests[0].method == "DELETE"
        assert handler.requests[0].url.path == "/drive/v3/files/f1"
