"""ticketbridge transports."""

from ticketbridge.transports.discord_transport import DiscordThread, DiscordTransport

__all__ = [
    "DiscordThread",
    "DiscordTransport",
]
