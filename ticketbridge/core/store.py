"""Key-value store and the thread-ticket mapping built on it."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from redis.asyncio import Redis

from ticketbridge.utils.logging import get_logger

log = get_logger(__name__)

TICKET_KEY_PREFIX = "mapping:ticket:"
THREAD_KEY_PREFIX = "mapping:thread:"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...


class RedisKeyValueStore:
    """JSON values in Redis, with optional expiry."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> RedisKeyValueStore:
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            log.warning("store_value_not_json", key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self._redis.set(key, json.dumps(value), ex=ttl_seconds or None)

    async def close(self) -> None:
        await self._redis.aclose()


@dataclass(frozen=True)
class ThreadTicketMapping:
    ticket_id: str
    thread_id: str
    created_at: str

    @classmethod
    def from_dict(cls, raw: Any) -> ThreadTicketMapping | None:
        if not isinstance(raw, dict):
            return None
        ticket_id = raw.get("ticket_id") or raw.get("unthreadTicketId")
        thread_id = raw.get("thread_id") or raw.get("discordThreadId")
        if not ticket_id or not thread_id:
            return None
        return cls(
            ticket_id=str(ticket_id),
            thread_id=str(thread_id),
            created_at=str(raw.get("created_at") or raw.get("createdAt") or ""),
        )


class ThreadTicketStore:
    """Bidirectional ticket <-> thread index."""

    def __init__(self, kv: KeyValueStore, ttl_seconds: int | None = None) -> None:
        self._kv = kv
        self._ttl = ttl_seconds

    async def bind(self, ticket_id: str, thread_id: str) -> ThreadTicketMapping:
        mapping = ThreadTicketMapping(
            ticket_id=ticket_id,
            thread_id=thread_id,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        value = asdict(mapping)
        await self._kv.set(f"{TICKET_KEY_PREFIX}{ticket_id}", value, self._ttl)
        await self._kv.set(f"{THREAD_KEY_PREFIX}{thread_id}", value, self._ttl)
        log.info("thread_ticket_bound", ticket_id=ticket_id, thread_id=thread_id)
        return mapping

    async def get_by_ticket_id(self, ticket_id: str) -> ThreadTicketMapping | None:
        return ThreadTicketMapping.from_dict(await self._kv.get(f"{TICKET_KEY_PREFIX}{ticket_id}"))

    async def get_by_thread_id(self, thread_id: str) -> ThreadTicketMapping | None:
        return ThreadTicketMapping.from_dict(await self._kv.get(f"{THREAD_KEY_PREFIX}{thread_id}"))
