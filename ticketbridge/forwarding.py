"""Discord-side entry points: forum posts open tickets, thread messages are forwarded to them."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from ticketbridge.attachments.handler import AttachmentHandler
from ticketbridge.attachments.models import Attachment, AttachmentProcessingResult, Sender
from ticketbridge.clients.unthread import Ticket, UnthreadClient
from ticketbridge.core.store import ThreadTicketStore
from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)


class ForwardStatus(str, Enum):
    UNMAPPED = "unmapped"
    EMPTY = "empty"
    SENT = "sent"
    ATTACHMENTS_UPLOADED = "attachments_uploaded"
    UPLOAD_FAILED = "upload_failed"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


@dataclass
class ForwardOutcome:
    status: ForwardStatus
    ticket_id: str | None = None
    result: AttachmentProcessingResult | None = None
    notice: str | None = None


@dataclass(frozen=True)
class Author:
    display_name: str
    username: str


class MessageForwarder:
    def __init__(
        self,
        store: ThreadTicketStore,
        client: UnthreadClient,
        attachments: AttachmentHandler,
        *,
        email_domain: str = "discord.invalid",
    ) -> None:
        self._store = store
        self._client = client
        self._attachments = attachments
        self._email_domain = email_domain

    def sender_for(self, author: Author) -> Sender:
        return Sender(
            name=author.display_name or author.username,
            email=f"{author.username}@{self._email_domain}",
        )

    async def open_ticket(
        self,
        thread_id: str,
        author: Author,
        title: str,
        content: str,
        attachments: list[Attachment] | None = None,
    ) -> Ticket | None:
        """Create a ticket for a new forum post and bind it to the thread.

        Returns None when the thread already has a ticket. Client errors
        propagate. Starter-post images are uploaded after binding; a failed
        upload is logged and does not undo the ticket.
        """
        existing = await self._store.get_by_thread_id(thread_id)
        if existing is not None:
            log.info("thread_already_mapped", thread_id=thread_id, ticket_id=existing.ticket_id)
            return None

        sender = self.sender_for(author)
        ticket = await self._client.create_ticket(sender, title, content or title)
        await self._store.bind(ticket.id, thread_id)

        images = self._attachments.detection.filter_supported_images(attachments or [])
        if images:
            config = self._attachments.detection.config
            result = await self._attachments.upload_to_ticket(
                ticket.id, images, config.success("attachments_only", count=len(images)), sender
            )
            if not result.success:
                log.warning("starter_attachments_not_uploaded", ticket_id=ticket.id, errors=result.errors)
        return ticket

    async def forward(
        self,
        thread_id: str,
        author: Author,
        content: str,
        attachments: list[Attachment],
    ) -> ForwardOutcome:
        mapping = await self._store.get_by_thread_id(thread_id)
        if mapping is None:
            log.debug("thread_not_mapped", thread_id=thread_id)
            return ForwardOutcome(ForwardStatus.UNMAPPED)

        ticket_id = mapping.ticket_id
        sender = self.sender_for(author)
        detection = self._attachments.detection
        config = detection.config

        try:
            if not attachments:
                if not content:
                    return ForwardOutcome(ForwardStatus.EMPTY, ticket_id)
                await self._client.send_message(ticket_id, sender, content)
                log.info("message_forwarded_to_ticket", ticket_id=ticket_id, thread_id=thread_id)
                return ForwardOutcome(ForwardStatus.SENT, ticket_id)

            images = detection.filter_supported_images(attachments)
            if not images:
                log.info(
                    "attachments_unsupported",
                    ticket_id=ticket_id,
                    count=len(attachments),
                )
                if content:
                    await self._client.send_message(ticket_id, sender, content)
                return ForwardOutcome(
                    ForwardStatus.UNSUPPORTED,
                    ticket_id,
                    notice=config.error("unsupported_file_type"),
                )

            body = content or config.success("attachments_only", count=len(images))
            result = await self._attachments.upload_to_ticket(ticket_id, images, body, sender)
            if result.success:
                return ForwardOutcome(ForwardStatus.ATTACHMENTS_UPLOADED, ticket_id, result)

            log.warning(
                "attachment_upload_fell_back_to_text",
                ticket_id=ticket_id,
                errors=result.errors,
            )
            if content:
                await self._client.send_message(ticket_id, sender, content)
            return ForwardOutcome(ForwardStatus.UPLOAD_FAILED, ticket_id, result)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("message_forward_failed", ticket_id=ticket_id, thread_id=thread_id)
            return ForwardOutcome(ForwardStatus.FAILED, ticket_id)
