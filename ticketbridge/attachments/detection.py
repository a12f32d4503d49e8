"""Attachment detection: should an event's files be transferred, and why not.

Two entry styles share one policy:

* metadata-based checks read the pre-computed ``attachments`` summary that
  the webhook producer attaches to an event, plus the raw file list in
  ``data.files`` where per-file detail is needed;
* collection-based checks walk a list of canonical ``Attachment`` records,
  used when a live message is being forwarded.
"""

from __future__ import annotations

from ticketbridge.attachments.config import (
    ATTACHMENT_CONFIG,
    AttachmentConfig,
    is_supported_type,
)
from ticketbridge.attachments.models import (
    Attachment,
    AttachmentsValidation,
    AttachmentValidationResult,
    FileInfo,
    InvalidAttachment,
    ProcessingDecision,
)
from ticketbridge.utils.logging import get_logger
from ticketbridge.webhooks.models import WebhookEvent

log = get_logger(__name__)

DASHBOARD_PLATFORM = "dashboard"
DISCORD_PLATFORM = "discord"

REASON_NON_DASHBOARD = "Non-dashboard event"
REASON_NO_ATTACHMENTS = "No attachments"
REASON_TOO_LARGE = "Files too large"
REASON_UNSUPPORTED = "Unsupported file types"
REASON_READY = "Ready for image processing"
REASON_UNKNOWN = "Unknown state"


class AttachmentDetectionService:
    def __init__(self, config: AttachmentConfig = ATTACHMENT_CONFIG) -> None:
        self._config = config

    @property
    def config(self) -> AttachmentConfig:
        return self._config

    # ------------------------------------------------------------------
    # Metadata-based checks
    # ------------------------------------------------------------------

    def should_process_event(self, event: WebhookEvent) -> bool:
        return (
            event.source_platform == DASHBOARD_PLATFORM
            and event.target_platform == DISCORD_PLATFORM
        )

    def has_attachments(self, event: WebhookEvent) -> bool:
        return (
            self.should_process_event(event)
            and event.attachments is not None
            and event.attachments.has_files
        )

    def has_image_attachments(self, event: WebhookEvent) -> bool:
        if not self.has_attachments(event):
            return False
        return any(t.lower().startswith("image/") for t in self.get_file_types(event))

    def has_supported_images(self, event: WebhookEvent) -> bool:
        if not self.has_image_attachments(event):
            return False
        return any(is_supported_type(t) for t in self.get_file_types(event))

    def has_unsupported_attachments(self, event: WebhookEvent) -> bool:
        # Files present but none usable: covers both wrong image formats
        # and non-image files.
        if not self.has_attachments(event):
            return False
        return not self.has_supported_images(event)

    def is_oversized(self, event: WebhookEvent, max_bytes: int) -> bool:
        """Per-file check against ``max_bytes``; total size is not a gate."""
        if not self.has_attachments(event):
            return False
        return any(f.size > max_bytes for f in event.files)

    def validate_consistency(self, event: WebhookEvent) -> bool:
        if not self.should_process_event(event):
            return False

        metadata = event.attachments
        files = event.raw_files
        has_files = metadata is not None and metadata.has_files

        if not has_files and not files:
            return True
        if has_files and metadata is not None and len(files) == metadata.file_count:
            return True

        log.warning(
            "attachment_metadata_inconsistent",
            event_id=event.data.get("id"),
            event_type=event.type,
            source_platform=event.source_platform,
            target_platform=event.target_platform,
            conversation_id=event.conversation_id,
            metadata_has_files=has_files,
            metadata_count=metadata.file_count if metadata else 0,
            actual_count=len(files),
        )
        return False

    def get_attachment_summary(self, event: WebhookEvent) -> str:
        if not self.has_attachments(event) or event.attachments is None:
            return "No attachments"
        metadata = event.attachments
        size_mb = round(metadata.total_size / 1024 / 1024, 2)
        return f"{metadata.file_count} files ({size_mb}MB) - {', '.join(metadata.types)}"

    def get_file_count(self, event: WebhookEvent) -> int:
        return event.attachments.file_count if event.attachments else 0

    def get_total_size(self, event: WebhookEvent) -> int:
        return event.attachments.total_size if event.attachments else 0

    def get_file_types(self, event: WebhookEvent) -> list[str]:
        return list(event.attachments.types) if event.attachments else []

    def get_file_names(self, event: WebhookEvent) -> list[str]:
        """Names in the same order as ``event.raw_files``."""
        return list(event.attachments.names) if event.attachments else []

    def get_processing_decision(
        self, event: WebhookEvent, max_bytes: int | None = None
    ) -> ProcessingDecision:
        if max_bytes is None:
            max_bytes = self._config.max_file_size

        should_process = self.should_process_event(event)
        has_attachments = self.has_attachments(event)
        has_images = self.has_image_attachments(event)
        has_supported = self.has_supported_images(event)
        has_unsupported = self.has_unsupported_attachments(event)
        oversized = self.is_oversized(event, max_bytes)

        # Size and type rejection outrank readiness
        if not should_process:
            reason = REASON_NON_DASHBOARD
        elif not has_attachments:
            reason = REASON_NO_ATTACHMENTS
        elif oversized:
            reason = REASON_TOO_LARGE
        elif has_unsupported:
            reason = REASON_UNSUPPORTED
        elif has_supported:
            reason = REASON_READY
        else:
            reason = REASON_UNKNOWN

        return ProcessingDecision(
            should_process=should_process,
            has_attachments=has_attachments,
            has_images=has_images,
            has_supported_images=has_supported,
            has_unsupported=has_unsupported,
            is_oversized=oversized,
            summary=self.get_attachment_summary(event),
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Collection-based checks
    # ------------------------------------------------------------------

    def has_image_collection(self, attachments: list[Attachment]) -> bool:
        return any(
            a.content_type is not None and is_supported_type(a.content_type)
            for a in attachments
        )

    def is_within_size_limit(self, attachment: Attachment) -> bool:
        return attachment.size <= self._config.max_file_size

    def get_collection_size(self, attachments: list[Attachment]) -> int:
        return sum(a.size for a in attachments)

    def filter_supported_images(self, attachments: list[Attachment]) -> list[Attachment]:
        kept: list[Attachment] = []
        for attachment in attachments:
            if not attachment.content_type:
                log.debug("attachment_skipped", name=attachment.name, reason="no content type")
                continue
            if not is_supported_type(attachment.content_type):
                log.debug(
                    "attachment_skipped",
                    name=attachment.name,
                    reason="unsupported type",
                    content_type=attachment.content_type,
                )
                continue
            if not self.is_within_size_limit(attachment):
                log.debug(
                    "attachment_skipped",
                    name=attachment.name,
                    reason="too large",
                    size=attachment.size,
                )
                continue
            kept.append(attachment)
        return kept

    def validate_attachment(self, attachment: Attachment) -> AttachmentValidationResult:
        if not attachment.content_type:
            return AttachmentValidationResult(
                is_valid=False, error=self._config.error("no_content_type")
            )

        if not is_supported_type(attachment.content_type):
            return AttachmentValidationResult(
                is_valid=False, error=self._config.error("unsupported_file_type")
            )

        if not self.is_within_size_limit(attachment):
            return AttachmentValidationResult(
                is_valid=False,
                error=self._config.error("file_too_large", name=attachment.name),
            )

        return AttachmentValidationResult(
            is_valid=True,
            file_info=FileInfo(
                file_name=attachment.name,
                mime_type=attachment.content_type,
                size=attachment.size,
            ),
        )

    def validate_attachments(self, attachments: list[Attachment]) -> AttachmentsValidation:
        result = AttachmentsValidation()

        # Over the count limit nothing is processed, not even the first N
        if len(attachments) > self._config.max_files_per_message:
            error = self._config.error("too_many_files")
            result.invalid = [InvalidAttachment(a, error) for a in attachments]
            return result

        for attachment in attachments:
            validation = self.validate_attachment(attachment)
            if validation.is_valid:
                result.valid.append(attachment)
                result.total_size += attachment.size
                continue

            result.invalid.append(
                InvalidAttachment(attachment, validation.error or "Unknown validation error")
            )
            if not attachment.content_type:
                continue
            if not is_supported_type(attachment.content_type):
                result.unsupported_count += 1
            elif not self.is_within_size_limit(attachment):
                result.oversized_count += 1

        return result
