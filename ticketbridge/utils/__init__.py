"""Utility modules for ticketbridge."""

from ticketbridge.utils.logging import get_logger, preview, setup_logging

__all__ = [
    "get_logger",
    "preview",
    "setup_logging",
]
