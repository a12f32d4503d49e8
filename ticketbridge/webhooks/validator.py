"""Structural validation of webhook events pulled off the queue."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from ticketbridge.utils.logging import get_logger
from ticketbridge.webhooks.models import (
    CONVERSATION_CREATED,
    CONVERSATION_UPDATED,
    MESSAGE_CREATED,
    SUPPORTED_EVENT_TYPES,
)

log = get_logger(__name__)

_ENVELOPE_FIELDS = ("platform", "targetPlatform", "type", "sourcePlatform", "timestamp")


_FRACTION = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def _parse_timestamp(value: str) -> datetime | None:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _conversation_id(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in ("conversationId", "id"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _has_conversation_id(data: dict[str, Any]) -> bool:
    return _conversation_id(data) is not None


class EventValidator:
    """Gate for malformed or unsupported events.

    ``validate`` only answers yes/no and logs why; callers build a
    ``WebhookEvent`` from the payload once it returns True.
    """

    @staticmethod
    def validate(event: Any) -> bool:
        if not isinstance(event, dict):
            log.warning("event_invalid", reason="not an object")
            return False

        for name in _ENVELOPE_FIELDS:
            value = event.get(name)
            if not isinstance(value, str) or not value.strip():
                log.warning("event_invalid", reason="missing or invalid envelope field", field=name)
                return False

        if _parse_timestamp(event["timestamp"]) is None:
            log.warning("event_invalid", reason="unparseable timestamp", timestamp=event["timestamp"])
            return False

        data = event.get("data")
        if not isinstance(data, dict):
            log.warning("event_invalid", reason="missing or invalid data")
            return False

        event_type = event["type"]
        if event_type not in SUPPORTED_EVENT_TYPES:
            # Expected noise from the producer
            log.debug("event_type_unsupported", event_type=event_type)
            return False

        if event_type == MESSAGE_CREATED:
            if not _has_conversation_id(data):
                log.warning("event_invalid", event_type=event_type, reason="missing conversation id")
                return False
            if not (data.get("text") or data.get("content") or data.get("markdown")):
                log.debug("message_without_text", conversation_id=EventValidator.extract_conversation_id(data))
            return True

        if event_type == CONVERSATION_UPDATED:
            if not _has_conversation_id(data) or not data.get("status"):
                log.warning(
                    "event_invalid",
                    event_type=event_type,
                    reason="missing conversation id or status",
                )
                return False
            return True

        if event_type == CONVERSATION_CREATED:
            if not _has_conversation_id(data):
                log.warning("event_invalid", event_type=event_type, reason="missing conversation id")
                return False
            return True

        # A supported type without a branch above is a wiring bug
        log.error("event_validation_fallthrough", event_type=event_type)
        return False

    @staticmethod
    def extract_conversation_id(data: Any) -> str | None:
        return _conversation_id(data)
