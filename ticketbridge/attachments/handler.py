"""Attachment transfer between Discord threads and Unthread conversations.

Forward flow: Discord attachments are downloaded and uploaded to a ticket
as one multipart batch. Reverse flow: ticket attachments are downloaded
(directly or through the thumbnail endpoint) and posted into the Discord
thread alongside the message text.

Both flows report through ``AttachmentProcessingResult``; only
cancellation escapes the public methods.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Protocol

import httpx

from ticketbridge.attachments.config import ATTACHMENT_CONFIG, AttachmentConfig
from ticketbridge.attachments.detection import AttachmentDetectionService
from ticketbridge.attachments.download import (
    ThumbnailEndpoint,
    ThumbnailSource,
    classify_download,
    download_direct,
    download_thumbnail,
)
from ticketbridge.attachments.models import (
    Attachment,
    AttachmentProcessingResult,
    FileBuffer,
    Sender,
)
from ticketbridge.core.retry import retry
from ticketbridge.errors import (
    DownloadError,
    DownloadTimeoutError,
    TicketBridgeError,
    TicketingAPIError,
    UploadTimeoutError,
)
from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)


class Uploader(Protocol):
    async def send_message_with_attachments(
        self,
        conversation_id: str,
        sender: Sender,
        text: str,
        buffers: list[FileBuffer],
    ) -> Any: ...


class ThreadSender(Protocol):
    async def send(self, content: str | None, files: list[FileBuffer]) -> Any: ...


def _is_retryable_upload_error(error: BaseException) -> bool:
    # Client errors other than rate limiting will not fix themselves
    if isinstance(error, TicketingAPIError):
        return error.status_code == 429 or error.status_code >= 500
    return True


def _same_host(url: str, base_url: str) -> bool:
    try:
        return httpx.URL(url).host == httpx.URL(base_url).host
    except httpx.InvalidURL:
        return False


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class AttachmentHandler:
    def __init__(
        self,
        http: httpx.AsyncClient,
        uploader: Uploader,
        *,
        detection: AttachmentDetectionService | None = None,
        config: AttachmentConfig = ATTACHMENT_CONFIG,
        thumbnail_source: ThumbnailSource | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._http = http
        self._uploader = uploader
        self._config = config
        self._detection = detection or AttachmentDetectionService(config)
        self._thumbnail_source = thumbnail_source
        self._sleep = sleep

    @property
    def detection(self) -> AttachmentDetectionService:
        return self._detection

    # ------------------------------------------------------------------
    # Forward flow: Discord -> ticket
    # ------------------------------------------------------------------

    async def upload_to_ticket(
        self,
        conversation_id: str,
        attachments: list[Attachment],
        message: str,
        on_behalf_of: Sender,
    ) -> AttachmentProcessingResult:
        started = time.monotonic()
        errors: list[str] = []

        try:
            validation = self._detection.validate_attachments(attachments)
            errors.extend(item.error for item in validation.invalid)

            if not validation.valid:
                errors.append(self._config.error("no_valid_attachments"))
                log.info(
                    "attachment_upload_skipped",
                    conversation_id=conversation_id,
                    total=len(attachments),
                    oversized=validation.oversized_count,
                    unsupported=validation.unsupported_count,
                )
                return AttachmentProcessingResult(
                    success=False, errors=errors, processing_time=_elapsed_ms(started)
                )

            log.info(
                "attachment_upload_started",
                conversation_id=conversation_id,
                valid=len(validation.valid),
                invalid=len(validation.invalid),
                total_size=validation.total_size,
            )

            buffers = await self._download_all(validation.valid, errors)
            if not buffers:
                errors.append(self._config.error("no_downloads"))
                return AttachmentProcessingResult(
                    success=False, errors=errors, processing_time=_elapsed_ms(started)
                )

            outcome = await retry(
                lambda: self._upload_batch(conversation_id, message, on_behalf_of, buffers),
                self._config.retry,
                is_retryable=_is_retryable_upload_error,
                operation_name="attachment_upload",
                sleep=self._sleep,
            )

            if not outcome.success:
                errors.append(self._upload_error_message(outcome.error))
                log.error(
                    "attachment_upload_failed",
                    conversation_id=conversation_id,
                    attempts=outcome.attempts,
                    error=str(outcome.error),
                )
                return AttachmentProcessingResult(
                    success=False,
                    processed_count=len(buffers),
                    errors=errors,
                    processing_time=_elapsed_ms(started),
                )

            elapsed = _elapsed_ms(started)
            log.info(
                "attachment_upload_complete",
                conversation_id=conversation_id,
                uploaded=len(buffers),
                attempts=outcome.attempts,
                processing_time_ms=elapsed,
            )
            return AttachmentProcessingResult(
                success=True,
                processed_count=len(buffers),
                errors=errors,
                processing_time=elapsed,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("attachment_upload_crashed", conversation_id=conversation_id)
            errors.append(f"{self._config.error('attachment_processing_failed')} ({e})")
            return AttachmentProcessingResult(
                success=False, errors=errors, processing_time=_elapsed_ms(started)
            )

    async def _upload_batch(
        self,
        conversation_id: str,
        message: str,
        sender: Sender,
        buffers: list[FileBuffer],
    ) -> Any:
        try:
            response = await asyncio.wait_for(
                self._uploader.send_message_with_attachments(
                    conversation_id, sender, message, buffers
                ),
                timeout=self._config.upload_timeout / 1000,
            )
        except asyncio.TimeoutError as e:
            raise UploadTimeoutError(conversation_id, self._config.upload_timeout) from e

        if not getattr(response, "success", False):
            raise TicketBridgeError(getattr(response, "error", None) or "upload rejected")
        return response

    def _upload_error_message(self, error: BaseException | None) -> str:
        if isinstance(error, UploadTimeoutError):
            return self._config.error("timeout")
        if error is None:
            return self._config.error("upload_error")
        return f"{self._config.error('upload_error')} ({error})"

    # ------------------------------------------------------------------
    # Reverse flow: ticket -> Discord thread
    # ------------------------------------------------------------------

    async def deliver_to_thread(
        self,
        thread: ThreadSender,
        attachments: list[Attachment],
        text: str | None = None,
    ) -> AttachmentProcessingResult:
        started = time.monotonic()
        errors: list[str] = []
        text = text or None

        try:
            valid: list[Attachment] = []
            for attachment in attachments:
                validation = self._detection.validate_attachment(attachment)
                if validation.is_valid:
                    valid.append(attachment)
                    continue
                log.warning(
                    "attachment_rejected",
                    name=attachment.name,
                    content_type=attachment.content_type,
                    size=attachment.size,
                    error=validation.error,
                )
                errors.append(validation.error or "Unknown validation error")

            limit = self._config.max_files_per_message
            if len(valid) > limit:
                # Discord caps files per message; the overflow is reported, not sent
                log.warning("attachment_overflow", dropped=len(valid) - limit, limit=limit)
                errors.append(self._config.error("too_many_files"))
                valid = valid[:limit]

            buffers = await self._download_all(valid, errors, reverse=True) if valid else []

            if not buffers and text is None:
                if attachments:
                    errors.append(self._config.error("no_downloads"))
                return AttachmentProcessingResult(
                    success=False, errors=errors, processing_time=_elapsed_ms(started)
                )

            outcome = await retry(
                lambda: thread.send(text, buffers),
                self._config.retry,
                operation_name="discord_thread_send",
                sleep=self._sleep,
            )

            if outcome.success:
                elapsed = _elapsed_ms(started)
                log.info(
                    "attachment_delivery_complete",
                    delivered=len(buffers),
                    requested=len(attachments),
                    with_text=text is not None,
                    processing_time_ms=elapsed,
                )
                return AttachmentProcessingResult(
                    success=True,
                    processed_count=len(buffers),
                    errors=errors,
                    processing_time=elapsed,
                )

            errors.append(self._config.error("discord_upload_failed"))
            delivered_text = bool(buffers) and await self._send_text_fallback(thread, text)
            return AttachmentProcessingResult(
                success=delivered_text,
                errors=errors,
                processing_time=_elapsed_ms(started),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("attachment_delivery_crashed", attachments=len(attachments))
            await self._send_text_fallback(thread, text)
            errors.append(f"{self._config.error('attachment_processing_failed')} ({e})")
            return AttachmentProcessingResult(
                success=False, errors=errors, processing_time=_elapsed_ms(started)
            )

    async def _send_text_fallback(self, thread: ThreadSender, text: str | None) -> bool:
        if text is None:
            return False
        try:
            await thread.send(text, [])
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("text_fallback_failed")
            return False
        log.info("text_fallback_delivered")
        return True

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    async def _download_all(
        self,
        attachments: list[Attachment],
        errors: list[str],
        *,
        reverse: bool = False,
    ) -> list[FileBuffer]:
        """Download concurrently; failures are logged and appended to ``errors``."""
        results = await asyncio.gather(
            *(self._download(a, reverse=reverse) for a in attachments),
            return_exceptions=True,
        )

        buffers: list[FileBuffer] = []
        for attachment, result in zip(attachments, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                log.warning(
                    "attachment_download_failed",
                    name=attachment.name,
                    timeout=isinstance(result, DownloadTimeoutError),
                    error=str(result),
                )
                errors.append(str(result))
                continue
            buffers.append(result)
        return buffers

    async def _download(self, attachment: Attachment, *, reverse: bool) -> FileBuffer:
        timeout_ms = self._config.upload_timeout
        if not reverse:
            return await download_direct(self._http, attachment, timeout_ms=timeout_ms)

        source = self._thumbnail_source
        strategy = classify_download(attachment)
        if isinstance(strategy, ThumbnailEndpoint):
            if source is None:
                raise DownloadError(attachment.name, "thumbnail endpoint not configured")
            return await download_thumbnail(self._http, source, attachment, timeout_ms=timeout_ms)

        headers = None
        # The API key only goes to the ticketing host itself
        if source is not None and _same_host(attachment.url, source.base_url):
            headers = {"X-API-KEY": source.api_key}
        return await download_direct(
            self._http, attachment, timeout_ms=timeout_ms, headers=headers
        )
