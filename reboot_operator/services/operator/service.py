"""
Operator Service

Runs the reconciliation loop as a long-lived process:
- Builds the operator context (node API client, event sink, rate limiter)
- Serves /health with loop statistics
- Stops cleanly on SIGTERM / SIGINT

Intended to run as a single replica; two operators on one fleet would
each grant a reboot.
"""

import asyncio
import signal
from datetime import datetime, timezone

from aiohttp import web

from reboot_operator.common.config import OperatorConfig
from reboot_operator.common.logging_setup import get_service_logger
from reboot_operator.storage.kube_client import (
    KubeEventSink,
    KubeStateRepository,
    create_http_client,
)

from .context import OperatorContext
from .reconciler import ReconciliationLoop

logger = get_service_logger("operator")


def build_context(config: OperatorConfig) -> OperatorContext:
    """Wire the node API client into an operator context"""
    client = create_http_client(config.api)
    return OperatorContext(
        repository=KubeStateRepository(client),
        events=KubeEventSink(client, namespace=config.api.event_namespace),
        settings=config.coordinator,
    )


class OperatorService:
    """
    Reboot Operator Service

    Owns the reconciliation task and the health server.
    """

    def __init__(
        self,
        config: OperatorConfig,
        context: OperatorContext | None = None,
    ):
        self.config = config
        self.context = context or build_context(config)
        self.loop = ReconciliationLoop(self.context)

        self._loop_task: asyncio.Task | None = None
        self._health_runner: web.AppRunner | None = None
        self._shutdown_event = asyncio.Event()
        self._started_at: str | None = None
        self._is_running = False

    async def start(self) -> None:
        """Start the loop and block until a shutdown signal arrives"""
        logger.info("Starting Reboot Operator")

        self._is_running = True
        self._started_at = datetime.now(timezone.utc).isoformat()

        if self.config.health.enabled:
            await self._start_health_server()

        self._loop_task = asyncio.create_task(self.loop.run())
        self._loop_task.add_done_callback(self._on_loop_done)

        logger.info(
            "Reboot Operator started",
            extra={
                "api_url": self.config.api.url,
                "max_concurrent_reboots": self.config.coordinator.max_concurrent_reboots,
                "reboot_timeout_seconds": self.config.coordinator.reboot_timeout_seconds,
            },
        )

        self._setup_signal_handlers()
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the loop, the health server, and close connections"""
        logger.info("Stopping Reboot Operator")

        self._is_running = False
        self.loop.stop()

        # The loop may be inside a coordination wait; cancel rather than
        # wait up to the reboot timeout.
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass

        await self._stop_health_server()
        await self.context.close()

        logger.info("Reboot Operator stopped")

    def _on_loop_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.critical(f"Reconciliation loop exited: {error}")
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    def build_health_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        return app

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        self._health_runner = web.AppRunner(self.build_health_app())
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, self.config.health.host, self.config.health.port)
        await site.start()

        logger.info(f"Health server started on port {self.config.health.port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    def health_status(self) -> dict:
        """Health payload, also used by tests"""
        loop_alive = self._loop_task is not None and not self._loop_task.done()
        healthy = self._is_running and loop_alive
        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": "reboot-operator",
            "started_at": self._started_at,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "waiting_on": self.loop.waiting_on,
            "loop": self.loop.stats.to_dict(),
        }

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        payload = self.health_status()
        status = 200 if payload["status"] == "healthy" else 503
        return web.json_response(payload, status=status)
