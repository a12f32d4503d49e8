"""Unthread REST client: ticket creation, plain and multipart message posts."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx

from ticketbridge.attachments.models import FileBuffer, Sender
from ticketbridge.config import UnthreadConfig
from ticketbridge.errors import TicketBridgeError, TicketingAPIError, UploadTimeoutError
from ticketbridge.utils.logging import get_logger, preview

log = get_logger(__name__)

MESSAGE_SOURCE = "discord"
UPLOAD_TIMEOUT_MS = 30_000


@dataclass
class UploadResponse:
    success: bool
    data: Any = None
    error: str | None = None


@dataclass(frozen=True)
class Ticket:
    id: str
    friendly_id: str


class UnthreadClient:
    def __init__(
        self,
        config: UnthreadConfig,
        http: httpx.AsyncClient | None = None,
        *,
        upload_timeout_ms: int = UPLOAD_TIMEOUT_MS,
    ) -> None:
        self._config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self._upload_timeout_ms = upload_timeout_ms

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _conversation_url(self, conversation_id: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/conversations/{conversation_id}"

    def _headers(self) -> dict[str, str]:
        return {"X-API-KEY": self._config.api_key}

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    async def create_ticket(self, sender: Sender, title: str, body: str) -> Ticket:
        """Open a conversation on behalf of a Discord user."""
        timeout_ms = self._config.http_timeout_ms
        payload: dict[str, Any] = {
            "type": "slack",
            "title": title,
            "markdown": body,
            "status": "open",
            "onBehalfOf": {"name": sender.name, "email": sender.email},
        }
        if self._config.slack_channel_id:
            payload["channelId"] = self._config.slack_channel_id.strip()

        try:
            response = await self._http.post(
                f"{self._config.base_url.rstrip('/')}/conversations",
                json=payload,
                headers=self._headers(),
                timeout=timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            log.error("unthread_ticket_timeout", timeout_ms=timeout_ms)
            raise TicketBridgeError(f"Ticket creation timed out after {timeout_ms}ms") from e

        data = self._check(response)
        if not isinstance(data, dict) or not data.get("id") or not data.get("friendlyId"):
            log.error("unthread_ticket_incomplete", body=preview(response.text, 500))
            raise TicketBridgeError("Ticket was created but the response is missing id or friendlyId")

        ticket = Ticket(id=str(data["id"]), friendly_id=str(data["friendlyId"]))
        log.info("unthread_ticket_created", ticket_id=ticket.id, friendly_id=ticket.friendly_id)
        return ticket

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, conversation_id: str, sender: Sender, text: str) -> UploadResponse:
        """Post a markdown message tagged as coming from Discord.

        A HEAD preflight confirms the conversation exists before posting.
        """
        url = self._conversation_url(conversation_id)
        timeout_ms = self._config.http_timeout_ms
        body = {
            "markdown": text,
            "onBehalfOf": {"name": sender.name, "email": sender.email},
            "metadata": {"source": MESSAGE_SOURCE},
        }

        try:
            preflight = await self._http.head(
                url, headers=self._headers(), timeout=timeout_ms / 1000
            )
            if preflight.is_error:
                raise TicketingAPIError(
                    preflight.status_code, "conversation preflight check failed"
                )

            response = await self._http.post(
                f"{url}/messages",
                json=body,
                headers=self._headers(),
                timeout=timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            log.error("unthread_request_timeout", conversation_id=conversation_id, timeout_ms=timeout_ms)
            raise UploadTimeoutError(conversation_id, timeout_ms) from e

        data = self._check(response, conversation_id)
        log.debug("unthread_message_sent", conversation_id=conversation_id)
        return UploadResponse(success=True, data=data)

    async def send_message_with_attachments(
        self,
        conversation_id: str,
        sender: Sender,
        text: str,
        buffers: list[FileBuffer],
    ) -> UploadResponse:
        payload = {
            "body": {"type": "markdown", "value": text},
            "onBehalfOf": {"name": sender.name, "email": sender.email},
        }
        files: list[tuple[str, tuple[str, bytes, str]]] = [
            ("attachments", (b.filename, b.data, b.mime_type)) for b in buffers
        ]

        log.info(
            "unthread_upload_started",
            conversation_id=conversation_id,
            files=len(buffers),
            total_bytes=sum(b.size for b in buffers),
        )

        try:
            response = await self._http.post(
                f"{self._conversation_url(conversation_id)}/messages",
                data={"json": json.dumps(payload)},
                files=files,
                headers=self._headers(),
                timeout=self._upload_timeout_ms / 1000,
            )
        except httpx.TimeoutException as e:
            log.error(
                "unthread_upload_timeout",
                conversation_id=conversation_id,
                timeout_ms=self._upload_timeout_ms,
            )
            raise UploadTimeoutError(conversation_id, self._upload_timeout_ms) from e

        data = self._check(response, conversation_id)
        log.info("unthread_upload_complete", conversation_id=conversation_id, files=len(buffers))
        return UploadResponse(success=True, data=data)

    def _check(self, response: httpx.Response, conversation_id: str | None = None) -> Any:
        if response.is_error:
            log.error(
                "unthread_request_failed",
                conversation_id=conversation_id,
                status=response.status_code,
                body=preview(response.text, 500),
            )
            raise TicketingAPIError(response.status_code, preview(response.text, 200))
        try:
            return response.json()
        except ValueError:
            return None
