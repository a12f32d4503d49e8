"""Exception types shared across the bridge."""

from __future__ import annotations


class TicketBridgeError(Exception):
    """Base class for errors raised by ticketbridge."""


class DownloadError(TicketBridgeError):
    """An attachment could not be fetched from its source."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Failed to download {name}: {reason}")
        self.name = name
        self.reason = reason


class DownloadTimeoutError(DownloadError):
    def __init__(self, name: str, timeout_ms: int) -> None:
        super().__init__(name, f"timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class UploadTimeoutError(TicketBridgeError):
    def __init__(self, conversation_id: str, timeout_ms: int) -> None:
        super().__init__(
            f"Upload to conversation {conversation_id} timed out after {timeout_ms}ms"
        )
        self.conversation_id = conversation_id
        self.timeout_ms = timeout_ms


class TicketingAPIError(TicketBridgeError):
    """The ticketing API answered with a non-success status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        message = f"Ticketing API returned {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ConsumerConnectionError(TicketBridgeError):
    """The webhook consumer could not reach its queue."""
