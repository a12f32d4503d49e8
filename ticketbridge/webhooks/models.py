"""Webhook event models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ticketbridge.attachments.models import Attachment

MESSAGE_CREATED = "message_created"
CONVERSATION_UPDATED = "conversation_updated"
CONVERSATION_CREATED = "conversation_created"

SUPPORTED_EVENT_TYPES: tuple[str, ...] = (
    MESSAGE_CREATED,
    CONVERSATION_UPDATED,
    CONVERSATION_CREATED,
)


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


@dataclass(frozen=True)
class AttachmentMetadata:
    has_files: bool = False
    file_count: int = 0
    total_size: int = 0
    types: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> AttachmentMetadata:
        """Lenient parse; malformed counts read as 0 and non-list fields as empty."""
        return cls(
            has_files=raw.get("hasFiles") is True,
            file_count=_count(raw.get("fileCount")),
            total_size=_count(raw.get("totalSize")),
            types=_strings(raw.get("types")),
            names=_strings(raw.get("names")),
        )


@dataclass(frozen=True)
class WebhookEvent:
    platform: str
    target_platform: str
    source_platform: str
    type: str
    timestamp: str
    data: dict[str, Any] = field(default_factory=dict)
    attachments: AttachmentMetadata | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> WebhookEvent:
        """Build from a payload that already passed ``EventValidator``."""
        metadata = payload.get("attachments")
        return cls(
            platform=payload["platform"],
            target_platform=payload["targetPlatform"],
            source_platform=payload["sourcePlatform"],
            type=payload["type"],
            timestamp=payload["timestamp"],
            data=dict(payload["data"]),
            attachments=(
                AttachmentMetadata.from_payload(metadata)
                if isinstance(metadata, Mapping) else None
            ),
        )

    @property
    def raw_files(self) -> list[dict[str, Any]]:
        """File dicts carried in ``data.files`` (or ``data.attachments``)."""
        files = self.data.get("files")
        if not isinstance(files, list):
            files = self.data.get("attachments")
        if not isinstance(files, list):
            return []
        return [f for f in files if isinstance(f, dict)]

    @property
    def files(self) -> list[Attachment]:
        return [Attachment.from_payload(f) for f in self.raw_files]

    @property
    def conversation_id(self) -> str | None:
        for key in ("conversationId", "id"):
            value = self.data.get(key)
            if isinstance(value, str) and value:
                return value
        return None
