"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from pathlib import Path

from onvifgate.config.store import YamlCredentialStore
from onvifgate.errors import FfmpegNotInstalledError
from onvifgate.gateway.adapter import OnvifAdapter
from onvifgate.gateway.host import DeviceRegistry
from onvifgate.health.server import HealthServer
from onvifgate.interfaces import DeviceConnector, DiscoveryProbe
from onvifgate.models.config import Config
from onvifgate.onvif.client import OnvifConnector
from onvifgate.onvif.discovery import WsDiscoveryProbe
from onvifgate.transcode.capabilities import FfmpegCapabilities, get_ffmpeg_capabilities
from onvifgate.transcode.supervisor import SpawnFn, spawn_ffmpeg

logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates all components.

    Handles component creation, lifecycle, and graceful shutdown.
    """

    def __init__(
        self,
        config_path: Path,
        *,
        ffmpeg_bin: str | None = None,
        probe: DiscoveryProbe | None = None,
        connector: DeviceConnector | None = None,
        spawn: SpawnFn = spawn_ffmpeg,
    ) -> None:
        """Initialize application with config file path.

        Args:
            config_path: Path to YAML config file (created when missing)
            ffmpeg_bin: Overrides transcode.ffmpeg_bin from the config
            probe: Discovery probe; WS-Discovery built from config when omitted
            connector: Device connector; onvif-zeep-async when omitted
            spawn: Subprocess factory for ffmpeg
        """
        self._config_path = config_path
        self._ffmpeg_bin = ffmpeg_bin
        self._probe = probe
        self._connector = connector
        self._spawn = spawn
        self._config: Config | None = None

        self._store = YamlCredentialStore(config_path)
        self._registry = DeviceRegistry()
        self._adapter: OnvifAdapter | None = None
        self._health_server: HealthServer | None = None
        self._start_time: float | None = None

        # Shutdown state
        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    async def run(self) -> None:
        """Run the application.

        Loads config, checks ffmpeg, attaches devices and runs until a shutdown signal.
        """
        logger.info("Starting ONVIF gateway...")
        await self.start()
        self._setup_signal_handlers()

        await self._shutdown_event.wait()
        await self.shutdown()

    async def start(self) -> None:
        await self._store.open()
        self._config = await self._store.load()
        logger.info("Config loaded from %s", self._config_path)

        binary = self._ffmpeg_bin or self._config.transcode.ffmpeg_bin
        capabilities = await asyncio.to_thread(get_ffmpeg_capabilities, binary)
        if not capabilities.installed:
            raise FfmpegNotInstalledError(binary)
        for line in capabilities.describe():
            logger.info("ffmpeg: %s", line)
        if self._ffmpeg_bin:
            self._config.transcode.ffmpeg_bin = self._ffmpeg_bin

        self._adapter = self._create_adapter(self._config, capabilities)

        try:
            if self._config.health.enabled:
                self._health_server = HealthServer(
                    host=self._config.health.host, port=self._config.health.port
                )
                await self._health_server.start()

            await self._adapter.start(self._config)
        except Exception:
            logger.error("Gateway startup failed; stopping started components")
            await self.shutdown()
            raise
        if self._health_server is not None:
            self._health_server.set_components(
                registry=self._registry, engine=self._adapter.engine
            )

        self._start_time = time.time()
        logger.info("Gateway started with %d device(s)", len(self._registry))

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        logger.info("Shutting down gateway...")

        if self._adapter is not None:
            await self._adapter.unload()

        if self._health_server is not None:
            await self._health_server.stop()

        logger.info("Gateway shutdown complete")

    @property
    def config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    def _create_adapter(self, config: Config, capabilities: FfmpegCapabilities) -> OnvifAdapter:
        probe = self._probe or WsDiscoveryProbe(
            timeout_s=config.discovery.timeout_s,
            attempts=config.discovery.attempts,
            ttl=config.discovery.ttl,
        )
        return OnvifAdapter(
            store=self._store,
            probe=probe,
            connector=self._connector or OnvifConnector(),
            registry=self._registry,
            capabilities=capabilities,
            spawn=self._spawn,
        )

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return

        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self._shutdown_started = True
        self._shutdown_event.set()
