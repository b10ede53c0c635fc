"""In-process device registry standing in for the host runtime."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from onvifgate.interfaces import DeviceHost
from onvifgate.models.enums import ActionStatus

if TYPE_CHECKING:
    from onvifgate.gateway.device import CameraDevice

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceEvent:
    """Property change or action status reported by a device."""

    device_id: str
    kind: str
    name: str
    value: Any


EventListener = Callable[[DeviceEvent], None]


class DeviceRegistry(DeviceHost):
    """Tracks attached devices and fans out their notifications to listeners."""

    def __init__(self) -> None:
        self._devices: dict[str, CameraDevice] = {}
        self._listeners: list[EventListener] = []

    @property
    def devices(self) -> dict[str, CameraDevice]:
        return dict(self._devices)

    def get(self, device_id: str) -> CameraDevice | None:
        return self._devices.get(device_id)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def handle_device_added(self, device: CameraDevice) -> None:
        if device.id in self._devices:
            logger.warning("Replacing already registered device %s", device.id)
        self._devices[device.id] = device
        logger.info("Device added: %s (%s)", device.id, device.title, extra={"camera_name": device.id})

    def handle_device_removed(self, device: CameraDevice) -> None:
        if self._devices.pop(device.id, None) is None:
            return
        logger.info("Device removed: %s", device.id, extra={"camera_name": device.id})

    def notify_property_changed(self, device: CameraDevice, name: str, value: Any) -> None:
        logger.debug(
            "Property changed: %s=%r", name, value, extra={"camera_name": device.id}
        )
        self._emit(DeviceEvent(device_id=device.id, kind="property", name=name, value=value))

    def notify_action_status(
        self, device: CameraDevice, action_id: str, status: ActionStatus
    ) -> None:
        logger.debug(
            "Action %s status: %s", action_id, status, extra={"camera_name": device.id}
        )
        self._emit(DeviceEvent(device_id=device.id, kind="action", name=action_id, value=status))

    def _emit(self, event: DeviceEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning("Device event listener failed: %s", exc, exc_info=True)
