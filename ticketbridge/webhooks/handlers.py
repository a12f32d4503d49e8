"""Routing of validated ticketing webhook events into Discord threads."""

from __future__ import annotations

import html
from typing import Any, Protocol

from ticketbridge.attachments.detection import REASON_READY, AttachmentDetectionService
from ticketbridge.attachments.handler import AttachmentHandler
from ticketbridge.attachments.models import FileBuffer
from ticketbridge.core.store import ThreadTicketStore
from ticketbridge.utils.logging import get_logger
from ticketbridge.webhooks.models import (
    CONVERSATION_CREATED,
    CONVERSATION_UPDATED,
    MESSAGE_CREATED,
    WebhookEvent,
)

log = get_logger(__name__)

# Dashboard uploads arrive as a bot message with this text and no userId
FILE_ATTACHED_TEXT = "file attached"

ARCHIVING_STATUSES = frozenset({"closed", "resolved"})

_STATUS_NAMES = {
    "open": "Open",
    "in_progress": "In Progress",
    "on_hold": "Waiting",
    "closed": "Resolved",
    "resolved": "Resolved",
}


class ChatThread(Protocol):
    @property
    def id(self) -> str: ...

    async def send(self, content: str | None, files: list[FileBuffer]) -> Any: ...

    async def archive(self) -> None: ...


class ChatGateway(Protocol):
    async def get_thread(self, thread_id: str) -> ChatThread | None: ...


def _message_text(data: dict[str, Any]) -> str:
    for key in ("text", "content", "markdown"):
        value = data.get(key)
        if isinstance(value, str):
            return value
    return ""


def status_display_name(status: str) -> str:
    return _STATUS_NAMES.get(status.lower(), status[:1].upper() + status[1:])


class TicketWebhookHandler:
    def __init__(
        self,
        store: ThreadTicketStore,
        chat: ChatGateway,
        attachments: AttachmentHandler,
        *,
        detection: AttachmentDetectionService | None = None,
    ) -> None:
        self._store = store
        self._chat = chat
        self._attachments = attachments
        self._detection = detection or attachments.detection

    async def handle_webhook_event(self, event: WebhookEvent) -> None:
        """Route one event. Failures propagate to the consumer, which logs them."""
        if event.type == MESSAGE_CREATED:
            await self._handle_message_created(event)
        elif event.type == CONVERSATION_UPDATED:
            await self._handle_conversation_updated(event)
        elif event.type == CONVERSATION_CREATED:
            log.debug("conversation_created_ignored", conversation_id=event.conversation_id)
        else:
            log.warning("webhook_event_unhandled", event_type=event.type)

    async def _resolve_thread(self, conversation_id: str) -> ChatThread | None:
        mapping = await self._store.get_by_ticket_id(conversation_id)
        if mapping is None:
            # Normal for conversations not opened from Discord
            log.warning("thread_mapping_not_found", conversation_id=conversation_id)
            return None

        thread = await self._chat.get_thread(mapping.thread_id)
        if thread is None:
            log.warning(
                "discord_thread_not_found",
                conversation_id=conversation_id,
                thread_id=mapping.thread_id,
            )
        return thread

    # ------------------------------------------------------------------
    # message_created
    # ------------------------------------------------------------------

    async def _handle_message_created(self, event: WebhookEvent) -> None:
        data = event.data
        conversation_id = event.conversation_id or ""

        metadata = data.get("metadata")
        if isinstance(metadata, dict) and metadata.get("source") == "discord":
            log.debug("message_from_discord_skipped", conversation_id=conversation_id)
            return

        raw_text = _message_text(data)
        is_file_notice = raw_text.strip().lower() == FILE_ATTACHED_TEXT
        if not data.get("userId") and not (event.raw_files and is_file_notice):
            log.debug("message_without_user_skipped", conversation_id=conversation_id)
            return

        decision = self._detection.get_processing_decision(event)
        consistent = self._detection.validate_consistency(event) if decision.has_attachments else True
        log.info(
            "attachment_processing_decision",
            conversation_id=conversation_id,
            should_process=decision.should_process,
            reason=decision.reason,
            has_attachments=decision.has_attachments,
            has_images=decision.has_images,
            has_supported_images=decision.has_supported_images,
            summary=decision.summary,
            metadata_consistent=consistent,
        )

        text = html.unescape(raw_text).strip()
        if is_file_notice and decision.has_attachments:
            text = ""

        if not text and not decision.has_attachments:
            log.warning("message_empty", conversation_id=conversation_id)
            return

        thread = await self._resolve_thread(conversation_id)
        if thread is None:
            return

        if decision.reason == REASON_READY and consistent:
            result = await self._attachments.deliver_to_thread(thread, event.files, text or None)
            if result.success:
                log.info(
                    "message_forwarded_to_discord",
                    conversation_id=conversation_id,
                    thread_id=thread.id,
                    attachments=result.processed_count,
                )
            else:
                log.warning(
                    "message_forward_failed",
                    conversation_id=conversation_id,
                    thread_id=thread.id,
                    errors=result.errors,
                )
            return

        notice = self._attachment_notice(event, decision.is_oversized, decision.has_unsupported, consistent)
        content = "\n\n".join(part for part in (text, notice) if part)
        if not content:
            return

        await thread.send(content, [])
        log.info(
            "message_forwarded_to_discord",
            conversation_id=conversation_id,
            thread_id=thread.id,
            attachments=0,
            reason=decision.reason,
        )

    def _attachment_notice(
        self,
        event: WebhookEvent,
        oversized: bool,
        unsupported: bool,
        consistent: bool,
    ) -> str | None:
        config = self._detection.config
        if oversized:
            names = [f.name for f in event.files if f.size > config.max_file_size]
            return config.error("file_too_large", name=", ".join(names) or "Attachment")
        if unsupported:
            return config.error("unsupported_file_type")
        if not consistent:
            return config.error("attachment_processing_failed")
        return None

    # ------------------------------------------------------------------
    # conversation_updated
    # ------------------------------------------------------------------

    async def _handle_conversation_updated(self, event: WebhookEvent) -> None:
        conversation = event.data.get("conversation")
        if not isinstance(conversation, dict):
            conversation = event.data
        conversation_id = conversation.get("id") or event.conversation_id
        status = str(conversation.get("status") or "")
        if not conversation_id or not status:
            log.warning("status_update_incomplete", conversation_id=conversation_id)
            return

        thread = await self._resolve_thread(conversation_id)
        if thread is None:
            return

        friendly_id = conversation.get("friendlyId") or conversation_id
        await thread.send(
            f"**Ticket Status Updated**\nTicket: #{friendly_id}\nStatus: {status_display_name(status)}",
            [],
        )
        log.info("ticket_status_posted", conversation_id=conversation_id, status=status, thread_id=thread.id)

        if status.lower() in ARCHIVING_STATUSES:
            try:
                await thread.archive()
            except Exception as e:
                log.warning("thread_archive_failed", thread_id=thread.id, error=str(e))
            else:
                log.info("thread_archived", thread_id=thread.id, status=status)
