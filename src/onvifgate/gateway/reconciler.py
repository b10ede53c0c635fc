"""Reconcile discovered and configured devices into attached cameras.

One probe pass walks the discovered devices in probe order:

1. Skip anything that is not a Network Video Transmitter.
2. Skip devices already known to this process.
3. Match against the configured descriptors by endpoint or URN.
4. Complete match: connect with the stored credentials and attach.
5. Incomplete match (no username or address): leave it for the operator.
6. No match: append a stub descriptor and remember the device.

The configuration is saved once at the end of a pass when stubs were added
(or an earlier save failed).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from onvifgate.errors import CapabilityMismatch, ConfigPersistError, ConnectError, DiscoveryError
from onvifgate.gateway.identity import (
    NVT_SCOPE,
    KnownDeviceSet,
    build_stub_descriptor,
    find_descriptor,
    is_network_video_transmitter,
    split_endpoint,
)
from onvifgate.interfaces import (
    CameraHandle,
    CredentialStore,
    DeviceConnector,
    DeviceHost,
    DiscoveryProbe,
)
from onvifgate.models.config import Config, DeviceDescriptor
from onvifgate.models.device import DiscoveredDevice

if TYPE_CHECKING:
    from onvifgate.gateway.device import CameraDevice

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceAttachment:
    """Everything needed to build a device for a freshly connected handle."""

    descriptor: DeviceDescriptor
    handle: CameraHandle
    address: str
    urn: str | None
    scopes: tuple[str, ...]
    title: str

    @property
    def identity_keys(self) -> tuple[str, ...]:
        return tuple(key for key in (self.address, self.urn) if key)


DeviceFactory = Callable[[DeviceAttachment], "CameraDevice"]


class ProbeSummary(BaseModel):
    """Outcome counters of one probe pass."""

    started_at: datetime
    finished_at: datetime | None = None
    discovered: int = 0
    skipped_type: int = 0
    skipped_known: int = 0
    attached: int = 0
    failed: int = 0
    incomplete: int = 0
    stubs_added: int = 0
    persisted: bool = False
    error: str | None = None
    attached_ids: list[str] = Field(default_factory=list)


class ReconciliationEngine:
    """Turns probe results and stored descriptors into attached devices.

    Only one probe pass runs at a time; overlapping calls return ``None``
    without probing.
    """

    def __init__(
        self,
        *,
        config: Config,
        store: CredentialStore,
        probe: DiscoveryProbe,
        connector: DeviceConnector,
        host: DeviceHost,
        device_factory: DeviceFactory,
        known: KnownDeviceSet | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._probe = probe
        self._connector = connector
        self._host = host
        self._device_factory = device_factory
        self._known = known if known is not None else KnownDeviceSet()
        self._probing = False
        self._dirty = False
        self._last_summary: ProbeSummary | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def known(self) -> KnownDeviceSet:
        return self._known

    @property
    def probing(self) -> bool:
        return self._probing

    @property
    def last_summary(self) -> ProbeSummary | None:
        return self._last_summary

    async def run_probe(self) -> ProbeSummary | None:
        """Run one discovery pass, or return None if one is already running."""
        if self._probing:
            logger.debug("Probe already in flight; ignoring request")
            return None
        self._probing = True
        try:
            return await self._probe_pass()
        finally:
            self._probing = False

    async def add_known_devices(self) -> list[CameraDevice]:
        """Connect every complete configured descriptor not yet known.

        Devices that do not advertise the Network Video Transmitter scope are
        skipped. Failures are logged and never block other entries.
        """
        attached: list[CameraDevice] = []
        for descriptor in list(self._config.devices):
            if not descriptor.is_complete:
                continue
            if self._known.contains_any(descriptor.address, descriptor.urn):
                continue

            handle = await self._connect(descriptor, descriptor.address)
            if handle is None:
                continue

            try:
                scopes = await handle.scopes()
                if NVT_SCOPE not in scopes:
                    raise CapabilityMismatch(descriptor.address, NVT_SCOPE)
            except CapabilityMismatch as exc:
                logger.debug("Skipping configured device: %s", exc)
                await _close_handle(handle)
                continue
            except Exception as exc:
                logger.warning("Failed to read scopes from %s: %s", descriptor.address, exc)
                await _close_handle(handle)
                continue

            info = handle.device_info
            title = descriptor.note or f"{info.manufacturer} {info.model}".strip()
            device = await self._attach(
                DeviceAttachment(
                    descriptor=descriptor,
                    handle=handle,
                    address=descriptor.address,
                    urn=descriptor.urn,
                    scopes=tuple(scopes),
                    title=title or descriptor.address,
                )
            )
            if device is not None:
                attached.append(device)
        return attached

    def forget(self, *keys: str | None) -> None:
        """Drop identity keys so the next probe may attach the device again."""
        self._known.discard(*keys)

    async def _probe_pass(self) -> ProbeSummary:
        summary = ProbeSummary(started_at=datetime.now(timezone.utc))
        try:
            discovered = await self._probe.probe()
        except DiscoveryError as exc:
            logger.warning("%s", exc)
            summary.error = str(exc)
            discovered = []

        summary.discovered = len(discovered)
        for device in discovered:
            await self._reconcile(device, summary)

        if self._dirty:
            summary.persisted = await self._persist()

        summary.finished_at = datetime.now(timezone.utc)
        self._last_summary = summary
        logger.info(
            "Probe finished: discovered=%d attached=%d failed=%d stubs_added=%d",
            summary.discovered,
            summary.attached,
            summary.failed,
            summary.stubs_added,
        )
        return summary

    async def _reconcile(self, device: DiscoveredDevice, summary: ProbeSummary) -> None:
        if not is_network_video_transmitter(device.device_types):
            summary.skipped_type += 1
            return

        if self._known.contains_any(device.service_endpoint, device.urn):
            summary.skipped_known += 1
            return

        descriptor = find_descriptor(self._config.devices, device)
        if descriptor is None:
            self._config.devices.append(build_stub_descriptor(device))
            self._known.add(device.service_endpoint, device.urn)
            self._dirty = True
            summary.stubs_added += 1
            logger.info(
                "Added config stub for %s (%s); fill in credentials to attach it",
                device.friendly_name,
                device.service_endpoint,
            )
            return

        if not descriptor.username or not descriptor.address:
            summary.incomplete += 1
            logger.debug("Configured device %s has no credentials yet", device.service_endpoint)
            return

        handle = await self._connect(descriptor, device.service_endpoint)
        if handle is None:
            summary.failed += 1
            return

        attached = await self._attach(
            DeviceAttachment(
                descriptor=descriptor,
                handle=handle,
                address=device.service_endpoint,
                urn=device.urn or descriptor.urn,
                scopes=device.scopes,
                title=device.friendly_name or descriptor.note or device.service_endpoint,
            )
        )
        if attached is None:
            summary.failed += 1
        else:
            summary.attached += 1
            summary.attached_ids.append(attached.id)

    async def _connect(self, descriptor: DeviceDescriptor, address: str) -> CameraHandle | None:
        try:
            host, port = split_endpoint(address)
        except ValueError as exc:
            logger.warning("Cannot connect to %r: %s", address, exc)
            return None

        try:
            return await self._connector.connect(
                host, port, descriptor.username, descriptor.password
            )
        except ConnectError as exc:
            logger.warning("Failed to initialize device at %s: %s", address, exc)
            return None

    async def _attach(self, attachment: DeviceAttachment) -> CameraDevice | None:
        device: CameraDevice | None = None
        try:
            device = self._device_factory(attachment)
            self._host.handle_device_added(device)
            await device.attach()
        except asyncio.CancelledError:
            await self._discard(attachment, device)
            raise
        except Exception as exc:
            logger.error(
                "Failed to attach device at %s: %s", attachment.address, exc, exc_info=True
            )
            await self._discard(attachment, device)
            return None

        self._known.add(*attachment.identity_keys)
        return device

    async def _discard(self, attachment: DeviceAttachment, device: CameraDevice | None) -> None:
        if device is None:
            await _close_handle(attachment.handle)
            return
        self._host.handle_device_removed(device)
        await device.close()

    async def _persist(self) -> bool:
        try:
            await self._store.save(self._config)
        except ConfigPersistError as exc:
            logger.error("%s", exc)
            return False
        self._dirty = False
        return True


async def _close_handle(handle: CameraHandle) -> None:
    try:
        await handle.close()
    except Exception:
        logger.debug("Closing device handle raised", exc_info=True)
