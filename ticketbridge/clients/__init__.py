"""ticketbridge API clients."""

from ticketbridge.clients.unthread import Ticket, UnthreadClient, UploadResponse

__all__ = ["Ticket", "UnthreadClient", "UploadResponse"]
