"""Attachment download strategies.

Most files are plain URLs. Files that Unthread mirrors from Slack carry a
Slack file id instead, and must be fetched through Unthread's authenticated
thumbnail endpoint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

import httpx

from ticketbridge.attachments.config import DEFAULT_MIME_TYPE
from ticketbridge.attachments.models import Attachment, FileBuffer
from ticketbridge.errors import DownloadError, DownloadTimeoutError
from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)

_SLACK_FILE_ID_RE = re.compile(r"^F[A-Z0-9]{8,}$")

USER_AGENT = "ticketbridge/0.1"


@dataclass(frozen=True)
class DirectUrl:
    url: str


@dataclass(frozen=True)
class ThumbnailEndpoint:
    file_id: str


DownloadStrategy = Union[DirectUrl, ThumbnailEndpoint]


@dataclass(frozen=True)
class ThumbnailSource:
    """Where and how to reach the ticketing API's file thumbnail endpoint."""
    base_url: str
    api_key: str
    team_id: str
    thumb_size: int = 1024

    def url_for(self, file_id: str) -> str:
        return f"{self.base_url.rstrip('/')}/slack/files/{file_id}/thumb"


def is_slack_file_id(value: str | None) -> bool:
    return bool(value) and _SLACK_FILE_ID_RE.match(value) is not None  # type: ignore[arg-type]


def classify_download(attachment: Attachment) -> DownloadStrategy:
    if is_slack_file_id(attachment.id):
        return ThumbnailEndpoint(file_id=attachment.id)  # type: ignore[arg-type]
    return DirectUrl(url=attachment.url)


async def _get(
    http: httpx.AsyncClient,
    url: str,
    *,
    name: str,
    timeout_ms: int,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
    try:
        response = await http.get(
            url,
            params=params,
            headers=request_headers,
            timeout=timeout_ms / 1000,
            follow_redirects=True,
        )
    except httpx.TimeoutException as e:
        raise DownloadTimeoutError(name, timeout_ms) from e
    except httpx.HTTPError as e:
        raise DownloadError(name, str(e) or type(e).__name__) from e

    if response.status_code >= 400:
        raise DownloadError(name, f"HTTP {response.status_code} {response.reason_phrase}".strip())
    return response


def _to_buffer(attachment: Attachment, response: httpx.Response) -> FileBuffer:
    data = response.content
    if attachment.size and len(data) != attachment.size:
        log.warning(
            "attachment_size_mismatch",
            name=attachment.name,
            expected=attachment.size,
            actual=len(data),
        )

    mime_type = attachment.content_type or response.headers.get("content-type") or DEFAULT_MIME_TYPE
    log.debug("attachment_downloaded", name=attachment.name, size=len(data), mime_type=mime_type)
    return FileBuffer(
        data=data,
        filename=attachment.name,
        mime_type=mime_type,
        size=len(data),
    )


async def download_direct(
    http: httpx.AsyncClient,
    attachment: Attachment,
    *,
    timeout_ms: int,
    headers: dict[str, str] | None = None,
) -> FileBuffer:
    if not attachment.url:
        raise DownloadError(attachment.name, "no download URL")
    log.debug("attachment_download_direct", name=attachment.name, url=attachment.url)
    response = await _get(
        http, attachment.url, name=attachment.name, timeout_ms=timeout_ms, headers=headers
    )
    return _to_buffer(attachment, response)


async def download_thumbnail(
    http: httpx.AsyncClient,
    source: ThumbnailSource,
    attachment: Attachment,
    *,
    timeout_ms: int,
) -> FileBuffer:
    file_id = attachment.id or ""
    log.debug("attachment_download_thumbnail", name=attachment.name, file_id=file_id)
    response = await _get(
        http,
        source.url_for(file_id),
        name=attachment.name,
        timeout_ms=timeout_ms,
        params={"thumbSize": str(source.thumb_size), "teamId": source.team_id},
        headers={"X-API-KEY": source.api_key, "Accept": "application/octet-stream"},
    )
    return _to_buffer(attachment, response)
