"""HTTP health check endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from onvifgate.models.enums import DesiredState, TranscodeState

if TYPE_CHECKING:
    from onvifgate.gateway.host import DeviceRegistry
    from onvifgate.gateway.reconciler import ReconciliationEngine

logger = logging.getLogger(__name__)


class HealthServer:
    """HTTP server for health checks.

    Provides /health with per-device transcode state and the last probe summary.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8081,
    ) -> None:
        self.host = host
        self.port = port

        self._registry: DeviceRegistry | None = None
        self._engine: ReconciliationEngine | None = None

        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def set_components(
        self,
        *,
        registry: DeviceRegistry | None = None,
        engine: ReconciliationEngine | None = None,
    ) -> None:
        self._registry = registry
        self._engine = engine

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        return app

    async def start(self) -> None:
        """Start HTTP server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        logger.info("HealthServer started: http://%s:%d/health", self.host, self.port)

    async def stop(self) -> None:
        """Stop HTTP server."""
        if self._runner:
            await self._runner.cleanup()

        self._app = None
        self._runner = None
        self._site = None

        logger.info("HealthServer stopped")

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response(self.compute_health())

    def compute_health(self) -> dict[str, Any]:
        """Compute health status.

        Returns:
            Health data dict with status, devices, known_devices, last_probe
        """
        devices = self._get_device_health()
        status = "healthy"
        if any(not device["transcode_ok"] for device in devices):
            status = "degraded"

        last_probe = None
        known_devices = 0
        if self._engine is not None:
            known_devices = len(self._engine.known)
            if self._engine.last_summary is not None:
                last_probe = self._engine.last_summary.model_dump(mode="json")

        return {
            "status": status,
            "devices": devices,
            "known_devices": known_devices,
            "last_probe": last_probe,
        }

    def _get_device_health(self) -> list[dict[str, Any]]:
        if self._registry is None:
            return []

        details: list[dict[str, Any]] = []
        for device in self._registry.devices.values():
            supervisor = device.supervisor
            wants_stream = supervisor.desired_state is DesiredState.ENABLED
            details.append(
                {
                    "id": device.id,
                    "title": device.title,
                    "transcode_state": str(supervisor.state),
                    "desired_state": str(supervisor.desired_state),
                    "transcode_ok": not wants_stream or supervisor.state is TranscodeState.RUNNING,
                }
            )
        return details
