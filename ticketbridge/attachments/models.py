"""Typed attachment records shared by detection and transfer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

_NAME_KEYS = ("filename", "name", "title")
_CONTENT_TYPE_KEYS = ("content_type", "contentType", "mimetype", "mimeType", "mime_type")
_URL_KEYS = ("url", "url_private_download", "url_private", "permalink")


def _first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class Attachment:
    """Canonical attachment record.

    Source platforms name their fields differently; ``from_discord`` and
    ``from_payload`` are the only places that know those names.
    """
    name: str
    url: str
    content_type: str | None
    size: int
    id: str | None = None

    @classmethod
    def from_discord(cls, attachment: Any) -> Attachment:
        """Build from a ``discord.Attachment`` (or anything shaped like one)."""
        attachment_id = getattr(attachment, "id", None)
        return cls(
            name=attachment.filename,
            url=attachment.url,
            content_type=attachment.content_type or None,
            size=int(attachment.size or 0),
            id=str(attachment_id) if attachment_id is not None else None,
        )

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> Attachment:
        """Build from an Unthread / Slack style file dict."""
        raw_id = raw.get("id")
        name = _first(raw, _NAME_KEYS) or (str(raw_id) if raw_id else "attachment")
        try:
            size = int(raw.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            name=str(name),
            url=str(_first(raw, _URL_KEYS) or ""),
            content_type=_first(raw, _CONTENT_TYPE_KEYS),
            size=size,
            id=str(raw_id) if raw_id not in (None, "") else None,
        )


@dataclass(frozen=True)
class Sender:
    name: str
    email: str


@dataclass
class FileBuffer:
    data: bytes
    filename: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class FileInfo:
    file_name: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class AttachmentValidationResult:
    is_valid: bool
    error: str | None = None
    file_info: FileInfo | None = None


@dataclass(frozen=True)
class InvalidAttachment:
    attachment: Attachment
    error: str


@dataclass
class AttachmentsValidation:
    valid: list[Attachment] = field(default_factory=list)
    invalid: list[InvalidAttachment] = field(default_factory=list)
    total_size: int = 0
    oversized_count: int = 0
    unsupported_count: int = 0


@dataclass(frozen=True)
class ProcessingDecision:
    should_process: bool
    has_attachments: bool
    has_images: bool
    has_supported_images: bool
    has_unsupported: bool
    is_oversized: bool
    summary: str
    reason: str


@dataclass
class AttachmentProcessingResult:
    success: bool
    processed_count: int = 0
    errors: list[str] = field(default_factory=list)
    processing_time: int = 0  # ms
