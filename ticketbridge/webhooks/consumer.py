"""Redis queue consumer for ticketing webhook events.

An external webhook receiver pushes JSON events onto a Redis list; this
worker pops them one at a time, validates them and hands them to the
webhook handler. Delivery is at-most-once: anything that fails to parse or
validate is logged and dropped.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from redis.asyncio import Redis

from ticketbridge.errors import ConsumerConnectionError
from ticketbridge.utils.logging import get_logger, preview
from ticketbridge.webhooks.models import SUPPORTED_EVENT_TYPES, WebhookEvent
from ticketbridge.webhooks.validator import EventValidator

log = get_logger(__name__)

WebhookHandler = Callable[[WebhookEvent], Awaitable[None]]
ConnectionFactory = Callable[[str], Any]

# Producers that nest the real event put it under one of these keys
_WRAPPER_KEYS = ("payload", "event")

PARSE_PREVIEW_CHARS = 500
INVALID_PREVIEW_CHARS = 1000


class ConsumerState(str, Enum):
    STOPPED = "stopped"
    CONNECTING = "connecting"
    RUNNING = "running"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ConsumerStatus:
    is_running: bool
    is_connected: bool
    is_blocking_client_connected: bool
    queue_name: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    redis: bool
    blocking_redis: bool
    polling: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "redis": "connected" if self.redis else "disconnected",
            "blocking_redis": "connected" if self.blocking_redis else "disconnected",
            "polling": "active" if self.polling else "inactive",
        }


def _default_connection(url: str) -> Redis:
    return Redis.from_url(url, decode_responses=True)


def _unwrap(parsed: Any) -> Any:
    if not isinstance(parsed, dict) or "type" in parsed:
        return parsed
    for key in _WRAPPER_KEYS:
        inner = parsed.get(key)
        if isinstance(inner, dict):
            return inner
    return parsed


class WebhookConsumer:
    def __init__(
        self,
        redis_url: str,
        handler: WebhookHandler,
        *,
        queue_name: str = "unthread-events",
        poll_interval: float = 1.0,
        pop_timeout: int = 1,
        idle_log_interval: float = 300.0,
        validator: type[EventValidator] = EventValidator,
        connection_factory: ConnectionFactory | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis_url = redis_url
        self._handler = handler
        self._queue_name = queue_name
        self._poll_interval = poll_interval
        self._pop_timeout = pop_timeout
        self._idle_log_interval = idle_log_interval
        self._validator = validator
        self._connection_factory = connection_factory or _default_connection
        self._sleep = sleep
        self._clock = clock

        self._state = ConsumerState.STOPPED
        self._client: Any = None
        self._blocking: Any = None
        self._client_connected = False
        self._blocking_connected = False
        self._task: asyncio.Task[None] | None = None
        self._last_idle_log: float | None = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def queue_name(self) -> str:
        return self._queue_name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._state is not ConsumerState.STOPPED:
            log.warning("consumer_already_running", queue=self._queue_name, state=self._state.value)
            return

        self._state = ConsumerState.CONNECTING
        log.info("consumer_connecting", queue=self._queue_name, redis_url=self._redis_url)
        try:
            # Separate connections so BLPOP never starves LLEN / PING
            self._client = self._connection_factory(self._redis_url)
            self._blocking = self._connection_factory(self._redis_url)
            await self._client.ping()
            self._client_connected = True
            await self._blocking.ping()
            self._blocking_connected = True
        except Exception as e:
            log.exception("consumer_connect_failed", queue=self._queue_name)
            await self._close_connections()
            self._state = ConsumerState.STOPPED
            raise ConsumerConnectionError(f"Could not connect to Redis: {e}") from e

        self._state = ConsumerState.RUNNING
        self._last_idle_log = None
        self._task = asyncio.create_task(self._poll_loop(), name="webhook-consumer")
        log.info("consumer_started", queue=self._queue_name, poll_interval=self._poll_interval)

    async def stop(self) -> None:
        was_running = self._state is not ConsumerState.STOPPED
        self._state = ConsumerState.STOPPED

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_connections()
        if was_running:
            log.info("consumer_stopped", queue=self._queue_name)

    async def _close_connections(self) -> None:
        for name in ("_client", "_blocking"):
            conn = getattr(self, name)
            if conn is None:
                continue
            try:
                await conn.aclose()
            except Exception:
                log.warning("consumer_connection_close_failed", connection=name.lstrip("_"), exc_info=True)
            setattr(self, name, None)
        self._client_connected = False
        self._blocking_connected = False

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while self._state is ConsumerState.RUNNING:
            try:
                received = await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("consumer_poll_failed", queue=self._queue_name)
                received = False

            # Drain without waiting while items keep arriving
            if not received and self._state is ConsumerState.RUNNING:
                await self._sleep(self._poll_interval)

    async def poll_once(self) -> bool:
        """Pop and process at most one item. Returns True if one was popped."""
        await self._log_queue_depth()

        item = await self._blocking.blpop([self._queue_name], timeout=self._pop_timeout)
        if item is None:
            return False

        _key, raw = item
        try:
            await self.process_event(raw)
        except Exception:
            log.exception("webhook_event_processing_failed", queue=self._queue_name)
        return True

    async def _log_queue_depth(self) -> None:
        try:
            length = await self._client.llen(self._queue_name)
        except Exception as e:
            log.warning("queue_length_unavailable", queue=self._queue_name, error=str(e))
            return

        if length:
            log.debug("queue_depth", queue=self._queue_name, length=length)
            return

        now = self._clock()
        if self._last_idle_log is None or now - self._last_idle_log >= self._idle_log_interval:
            log.info("queue_idle", queue=self._queue_name)
            self._last_idle_log = now

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    async def process_event(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            log.error(
                "webhook_event_parse_failed",
                error=str(e),
                preview=preview(raw, PARSE_PREVIEW_CHARS),
            )
            return

        payload = _unwrap(parsed)

        if not self._validator.validate(payload):
            event_type = payload.get("type") if isinstance(payload, dict) else None
            # Unknown types were already reported at debug by the validator
            level = log.warning if event_type in SUPPORTED_EVENT_TYPES else log.debug
            level(
                "webhook_event_dropped",
                event_type=event_type,
                preview=preview(json.dumps(payload, default=str), INVALID_PREVIEW_CHARS),
            )
            return

        event = WebhookEvent.from_payload(payload)
        log.info(
            "webhook_event_received",
            event_type=event.type,
            conversation_id=event.conversation_id,
            source_platform=event.source_platform,
        )

        try:
            await self._handler(event)
        except Exception:
            log.exception(
                "webhook_handler_failed",
                event_type=event.type,
                conversation_id=self._validator.extract_conversation_id(event.data),
            )
            raise

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _is_polling(self) -> bool:
        return (
            self._state is ConsumerState.RUNNING
            and self._task is not None
            and not self._task.done()
        )

    def get_status(self) -> ConsumerStatus:
        return ConsumerStatus(
            is_running=self._state is ConsumerState.RUNNING,
            is_connected=self._client is not None and self._client_connected,
            is_blocking_client_connected=self._blocking is not None and self._blocking_connected,
            queue_name=self._queue_name,
        )

    async def _ping(self, conn: Any) -> bool:
        if conn is None:
            return False
        try:
            await conn.ping()
        except Exception as e:
            log.warning("consumer_ping_failed", error=str(e))
            return False
        return True

    async def health_check(self) -> HealthReport:
        redis_ok = await self._ping(self._client)
        blocking_ok = await self._ping(self._blocking)
        self._client_connected = redis_ok
        self._blocking_connected = blocking_ok
        polling = self._is_polling()

        if redis_ok and blocking_ok and polling:
            status = HealthStatus.HEALTHY
        elif (redis_ok or blocking_ok) and polling:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.UNHEALTHY

        return HealthReport(status=status, redis=redis_ok, blocking_redis=blocking_ok, polling=polling)
