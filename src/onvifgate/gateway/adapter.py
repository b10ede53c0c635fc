"""Adapter wiring discovery, reconciliation and camera devices together."""

from __future__ import annotations

import asyncio
import logging

from onvifgate.gateway.device import CameraDevice
from onvifgate.gateway.host import DeviceRegistry
from onvifgate.gateway.identity import device_id_for
from onvifgate.gateway.reconciler import DeviceAttachment, ProbeSummary, ReconciliationEngine
from onvifgate.interfaces import CredentialStore, DeviceConnector, DiscoveryProbe
from onvifgate.models.config import Config
from onvifgate.transcode.capabilities import FfmpegCapabilities
from onvifgate.transcode.supervisor import SpawnFn, spawn_ffmpeg

logger = logging.getLogger(__name__)


class OnvifAdapter:
    """Owns the attached ONVIF cameras for the lifetime of the gateway.

    ``start()`` loads the configuration, attaches configured devices and runs
    the first discovery pass. With ``discovery.interval_s > 0`` further passes
    run in the background until ``unload()``.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        probe: DiscoveryProbe,
        connector: DeviceConnector,
        registry: DeviceRegistry,
        capabilities: FfmpegCapabilities,
        spawn: SpawnFn = spawn_ffmpeg,
    ) -> None:
        self._store = store
        self._probe = probe
        self._connector = connector
        self._registry = registry
        self._capabilities = capabilities
        self._spawn = spawn
        self._config: Config | None = None
        self._engine: ReconciliationEngine | None = None
        self._discovery_task: asyncio.Task[None] | None = None
        self._passes: set[asyncio.Task[ProbeSummary | None]] = set()
        self._pairing = False
        self._pairing_cancelled = asyncio.Event()

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            raise RuntimeError("Adapter not started")
        return self._engine

    @property
    def config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Adapter not started")
        return self._config

    async def start(self, config: Config | None = None) -> None:
        """Attach configured devices and run the first probe.

        Args:
            config: Already loaded configuration; read from the store when omitted
        """
        if config is None:
            await self._store.open()
            config = await self._store.load()
        self._config = config
        self._engine = ReconciliationEngine(
            config=self._config,
            store=self._store,
            probe=self._probe,
            connector=self._connector,
            host=self._registry,
            device_factory=self._build_device,
        )
        logger.info("Loaded %d configured device(s)", len(self._config.devices))

        await self._engine.add_known_devices()
        await self._engine.run_probe()

        interval = self._config.discovery.interval_s
        if interval > 0:
            self._discovery_task = asyncio.create_task(self._discovery_loop(interval))

    async def start_pairing(self) -> ProbeSummary | None:
        """Run a discovery pass on request.

        Returns the pass summary, or None when pairing is already underway,
        another pass is in flight, or ``cancel_pairing()`` was called first.
        A cancelled pairing stops waiting; the pass itself always completes.
        """
        if self._pairing:
            return None
        self._pairing = True
        self._pairing_cancelled = asyncio.Event()
        pass_task = self._start_pass()
        cancelled = asyncio.create_task(self._pairing_cancelled.wait())
        try:
            done, _ = await asyncio.wait({pass_task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            self._pairing = False
        if pass_task in done:
            return pass_task.result()
        logger.info("Pairing cancelled; the running pass will finish in the background")
        return None

    def cancel_pairing(self) -> None:
        self._pairing = False
        self._pairing_cancelled.set()

    async def remove_device(self, device_id: str) -> CameraDevice | None:
        """Detach a device and forget it so a later probe can re-attach it."""
        device = self._registry.get(device_id)
        if device is None:
            return None
        self.engine.forget(*device.identity_keys)
        self._registry.handle_device_removed(device)
        await device.close()
        return device

    async def unload(self) -> None:
        """Stop discovery and every device's transcode for good.

        A pass already running is allowed to finish first so nothing it
        attaches outlives the unload.
        """
        self.cancel_pairing()
        task = self._discovery_task
        self._discovery_task = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        passes = list(self._passes)
        if passes:
            await asyncio.gather(*passes, return_exceptions=True)

        devices = list(self._registry.devices.values())
        if devices:
            await asyncio.gather(*(device.close() for device in devices))
        logger.info("Adapter unloaded (%d device(s) closed)", len(devices))

    async def _discovery_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await asyncio.shield(self._start_pass())
            except Exception:
                logger.exception("Discovery pass failed")

    def _start_pass(self) -> asyncio.Task[ProbeSummary | None]:
        # Passes run as their own tasks; callers may stop waiting but never interrupt one.
        task = asyncio.create_task(self.engine.run_probe())
        self._passes.add(task)
        task.add_done_callback(self._passes.discard)
        return task

    def _build_device(self, attachment: DeviceAttachment) -> CameraDevice:
        config = self.config
        return CameraDevice(
            device_id=device_id_for(attachment.urn, attachment.address),
            title=attachment.title,
            handle=attachment.handle,
            host=self._registry,
            username=attachment.descriptor.username,
            password=attachment.descriptor.password,
            scopes=attachment.scopes,
            identity_keys=attachment.identity_keys,
            transcode=config.transcode,
            snapshot=config.snapshot,
            capabilities=self._capabilities,
            spawn=self._spawn,
        )
