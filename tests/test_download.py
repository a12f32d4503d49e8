"""Tests for attachment download strategies."""

import httpx
import pytest
from structlog.testing import capture_logs

from ticketbridge.attachments.config import DEFAULT_MIME_TYPE
from ticketbridge.attachments.download import (
    DirectUrl,
    ThumbnailEndpoint,
    ThumbnailSource,
    classify_download,
    download_direct,
    download_thumbnail,
)
from ticketbridge.attachments.models import Attachment
from ticketbridge.errors import DownloadError, DownloadTimeoutError

SOURCE = ThumbnailSource(
    base_url="https://api.unthread.io/api",
    api_key="secret-key",
    team_id="T123",
    thumb_size=1024,
)


def attachment(**overrides):
    values = dict(
        name="shot.png",
        url="https://cdn.example.com/shot.png",
        content_type="image/png",
        size=4,
        id=None,
    )
    values.update(overrides)
    return Attachment(**values)


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestClassify:
    def test_slack_file_id(self):
        assert classify_download(attachment(id="F0123ABCDE")) == ThumbnailEndpoint(file_id="F0123ABCDE")

    @pytest.mark.parametrize("file_id", [None, "", "F123", "f0123abcde", "1187654321098765432", "X0123ABCDE"])
    def test_direct(self, file_id):
        att = attachment(id=file_id)
        assert classify_download(att) == DirectUrl(url=att.url)


class TestDownloadDirect:
    async def test_buffers_body(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            return httpx.Response(200, content=b"\x89PNG")

        async with client_for(handler) as http:
            buffer = await download_direct(http, attachment(), timeout_ms=1000, headers={"X-API-KEY": "k"})

        assert buffer.data == b"\x89PNG"
        assert buffer.size == 4
        assert buffer.filename == "shot.png"
        assert buffer.mime_type == "image/png"
        assert seen["url"] == "https://cdn.example.com/shot.png"
        assert seen["headers"]["x-api-key"] == "k"

    async def test_default_mime_type(self):
        async with client_for(lambda request: httpx.Response(200, content=b"data")) as http:
            buffer = await download_direct(http, attachment(content_type=None), timeout_ms=1000)
        assert buffer.mime_type == DEFAULT_MIME_TYPE

    async def test_size_mismatch_is_not_fatal(self):
        async with client_for(lambda request: httpx.Response(200, content=b"12")) as http:
            with capture_logs() as logs:
                buffer = await download_direct(http, attachment(size=2048), timeout_ms=1000)

        assert buffer.size == 2
        mismatch = [e for e in logs if e["event"] == "attachment_size_mismatch"]
        assert len(mismatch) == 1
        assert mismatch[0]["log_level"] == "warning"
        assert mismatch[0]["expected"] == 2048
        assert mismatch[0]["actual"] == 2

    async def test_http_error(self):
        async with client_for(lambda request: httpx.Response(404)) as http:
            with pytest.raises(DownloadError) as excinfo:
                await download_direct(http, attachment(), timeout_ms=1000)
        assert "HTTP 404" in str(excinfo.value)
        assert not isinstance(excinfo.value, DownloadTimeoutError)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with client_for(handler) as http:
            with pytest.raises(DownloadTimeoutError) as excinfo:
                await download_direct(http, attachment(), timeout_ms=250)
        assert excinfo.value.timeout_ms == 250
        assert "shot.png" in str(excinfo.value)

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with client_for(handler) as http:
            with pytest.raises(DownloadError):
                await download_direct(http, attachment(), timeout_ms=1000)

    async def test_missing_url(self):
        async with client_for(lambda request: httpx.Response(200)) as http:
            with pytest.raises(DownloadError):
                await download_direct(http, attachment(url=""), timeout_ms=1000)


class TestDownloadThumbnail:
    async def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, content=b"thumb", headers={"content-type": "image/jpeg"})

        async with client_for(handler) as http:
            buffer = await download_thumbnail(
                http, SOURCE, attachment(id="F0123ABCDE", content_type=None, size=5), timeout_ms=1000
            )

        request = seen["request"]
        assert request.method == "GET"
        assert request.url.host == "api.unthread.io"
        assert request.url.path == "/api/slack/files/F0123ABCDE/thumb"
        assert request.url.params["thumbSize"] == "1024"
        assert request.url.params["teamId"] == "T123"
        assert request.headers["x-api-key"] == "secret-key"
        assert request.headers["accept"] == "application/octet-stream"
        assert buffer.data == b"thumb"
        assert buffer.mime_type == "image/jpeg"

    async def test_auth_failure(self):
        async with client_for(lambda request: httpx.Response(401)) as http:
            with pytest.raises(DownloadError) as excinfo:
                await download_thumbnail(http, SOURCE, attachment(id="F0123ABCDE"), timeout_ms=1000)
        assert "HTTP 401" in str(excinfo.value)
