"""Attachment detection and transfer."""
