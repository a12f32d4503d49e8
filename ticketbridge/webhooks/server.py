"""Health and status HTTP endpoint using aiohttp."""

from __future__ import annotations

from aiohttp import web

from ticketbridge.config import HealthConfig
from ticketbridge.utils.logging import get_logger
from ticketbridge.webhooks.consumer import HealthStatus, WebhookConsumer

log = get_logger(__name__)


class HealthServer:
    """Exposes the webhook consumer's health to load balancers and orchestrators."""

    def __init__(self, config: HealthConfig, consumer: WebhookConsumer) -> None:
        self._config = config
        self._consumer = consumer
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        app = self._build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info("health_server_started", bind=self._config.bind, port=self._config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("health_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/status", self._handle_status)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        report = await self._consumer.health_check()
        status = 503 if report.status is HealthStatus.UNHEALTHY else 200
        if status != 200:
            log.warning("health_check_unhealthy", **report.to_dict())
        return web.json_response(report.to_dict(), status=status)

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self._consumer.get_status().to_dict())
