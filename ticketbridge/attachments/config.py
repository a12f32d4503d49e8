"""Attachment limits, supported formats and user-facing messages.

Everything a user can read about attachment handling comes from the message
tables here, never from ad hoc strings at call sites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ticketbridge.core.retry import RetryPolicy

SUPPORTED_IMAGE_TYPES: tuple[str, ...] = (
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
)

DEFAULT_MIME_TYPE = "application/octet-stream"

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}

_ERROR_MESSAGES = MappingProxyType({
    "no_content_type": "Attachment has no content type information",
    "unsupported_file_type": "⚠️ Only images (PNG, JPEG, GIF, WebP) are supported.",
    "file_too_large": "📏 {name} exceeds maximum size of {max_mb}MB per image.",
    "too_many_files": "📎 Too many files. Maximum is {max_files} images per message.",
    "no_valid_attachments": "No valid attachments found",
    "no_downloads": "No attachments could be downloaded",
    "upload_failed": "🔄 Upload failed, retrying... (attempt {attempt}/{max_attempts})",
    "upload_error": "❌ Failed to upload attachments. Please try again.",
    "download_failed": "⬇️ Failed to download attachment from Discord.",
    "timeout": "⏱️ Upload timed out. Please try again with smaller files.",
    "unthread_download_failed": "⬇️ Failed to download attachment from Unthread.",
    "unthread_auth_error": "🔑 Authentication failed when downloading from Unthread.",
    "discord_upload_failed": "📤 Failed to upload attachment to Discord.",
    "attachment_processing_failed": "🔄 Attachment processing failed, please try again.",
})

_SUCCESS_MESSAGES = MappingProxyType({
    "upload_complete": "📎 Image(s) uploaded successfully to your support ticket!",
    "partial_success": "📎 {count} of {total} images uploaded successfully.",
    "unthread_download_complete": "📎 File(s) downloaded successfully from Unthread!",
    "discord_upload_complete": "📤 File(s) uploaded successfully to Discord!",
    "attachments_only": "📎 Shared {count} attachment(s) from Discord.",
})


@dataclass(frozen=True)
class AttachmentConfig:
    max_file_size: int = 8 * 1024 * 1024
    max_files_per_message: int = 10
    upload_timeout: int = 30_000  # ms
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    supported_image_types: tuple[str, ...] = SUPPORTED_IMAGE_TYPES
    error_messages: Mapping[str, str] = field(default_factory=lambda: _ERROR_MESSAGES)
    success_messages: Mapping[str, str] = field(default_factory=lambda: _SUCCESS_MESSAGES)
    success_reaction: str = "✅"
    failure_reaction: str = "❌"

    def error(self, key: str, **values: object) -> str:
        return self.error_messages[key].format(
            max_mb=self.max_file_size // (1024 * 1024),
            max_files=self.max_files_per_message,
            max_attempts=self.retry.max_attempts,
            **values,
        )

    def success(self, key: str, **values: object) -> str:
        return self.success_messages[key].format(**values)


ATTACHMENT_CONFIG = AttachmentConfig()


def get_extension_for_mime_type(mime_type: str) -> str:
    """Map a normalized supported MIME type to its file extension.

    No normalization happens here: ``"IMAGE/PNG"`` or ``"image/png; q=1"``
    fall through to ``"bin"``.
    """
    return _EXTENSIONS.get(mime_type, "bin")


def normalize_content_type(content_type: str) -> str:
    """``"IMAGE/PNG; charset=utf-8"`` -> ``"image/png"``."""
    return content_type.split(";", 1)[0].strip().lower()


def is_supported_type(content_type: str) -> bool:
    return normalize_content_type(content_type) in SUPPORTED_IMAGE_TYPES
