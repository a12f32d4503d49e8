"""ticketbridge entry point: wires everything together and runs the bridge."""

from __future__ import annotations

import asyncio
import signal
import sys

import click
import httpx

from ticketbridge import __version__
from ticketbridge.attachments.config import ATTACHMENT_CONFIG
from ticketbridge.attachments.detection import AttachmentDetectionService
from ticketbridge.attachments.download import ThumbnailSource
from ticketbridge.attachments.handler import AttachmentHandler
from ticketbridge.clients.unthread import UnthreadClient
from ticketbridge.config import Settings, load_settings
from ticketbridge.core.store import RedisKeyValueStore, ThreadTicketStore
from ticketbridge.forwarding import MessageForwarder
from ticketbridge.transports.discord_transport import DiscordTransport
from ticketbridge.utils.logging import get_logger, setup_logging
from ticketbridge.webhooks.consumer import WebhookConsumer
from ticketbridge.webhooks.handlers import TicketWebhookHandler
from ticketbridge.webhooks.server import HealthServer

log = get_logger(__name__)


class TicketBridge:
    """Main application orchestrator."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        self.http = httpx.AsyncClient()
        self.kv = RedisKeyValueStore.from_url(settings.get_store_redis_url())
        self.store = ThreadTicketStore(self.kv, settings.store.mapping_ttl_seconds)
        self.unthread = UnthreadClient(
            settings.unthread,
            self.http,
            upload_timeout_ms=ATTACHMENT_CONFIG.upload_timeout,
        )

        detection = AttachmentDetectionService(ATTACHMENT_CONFIG)
        self.attachments = AttachmentHandler(
            self.http,
            self.unthread,
            detection=detection,
            config=ATTACHMENT_CONFIG,
            thumbnail_source=ThumbnailSource(
                base_url=settings.unthread.base_url,
                api_key=settings.unthread.api_key,
                team_id=settings.unthread.team_id,
                thumb_size=settings.unthread.thumb_size,
            ),
        )

        self.forwarder = MessageForwarder(
            self.store,
            self.unthread,
            self.attachments,
            email_domain=settings.dummy_email_domain,
        )
        self.discord = DiscordTransport(settings.discord, self.forwarder)

        self.webhook_handler = TicketWebhookHandler(
            self.store, self.discord, self.attachments, detection=detection
        )
        queue = settings.queue
        self.consumer = WebhookConsumer(
            queue.redis_url,
            self.webhook_handler.handle_webhook_event,
            queue_name=queue.queue_name,
            poll_interval=queue.poll_interval,
            pop_timeout=queue.pop_timeout,
            idle_log_interval=queue.idle_log_interval,
        )
        self.health = HealthServer(settings.health, self.consumer) if settings.health.enabled else None

    async def start(self) -> None:
        log.info("ticketbridge_starting", version=__version__, queue=self.settings.queue.queue_name)

        if self.settings.discord.token:
            await self.discord.start()
        else:
            log.warning("discord_token_missing")

        await self.consumer.start()

        if self.health is not None:
            await self.health.start()

        log.info("ticketbridge_ready")

    async def stop(self) -> None:
        log.info("ticketbridge_stopping")
        if self.health is not None:
            await self.health.stop()
        await self.consumer.stop()
        if self.settings.discord.token:
            await self.discord.stop()
        await self.kv.close()
        await self.http.aclose()
        log.info("ticketbridge_stopped")


async def run(settings: Settings) -> None:
    app = TicketBridge(settings)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        stop_event.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        await app.start()
        if sys.platform == "win32":
            while not stop_event.is_set():
                await asyncio.sleep(1)
        else:
            await stop_event.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


@click.command()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.version_option(__version__, prog_name="ticketbridge")
def cli(config_path: str | None, log_level: str | None) -> None:
    """Bridge Discord support threads with Unthread tickets."""
    settings = load_settings(config_path)
    if log_level:
        settings.log_level = log_level
    setup_logging(level=settings.log_level, json_output=settings.log_json)
    asyncio.run(run(settings))


if __name__ == "__main__":
    cli()
