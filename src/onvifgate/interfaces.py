"""Interface definitions for gateway collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from onvifgate.models.camera import DeviceInfo, MediaProfile, Snapshot
    from onvifgate.models.config import Config
    from onvifgate.models.device import DiscoveredDevice
    from onvifgate.models.enums import ActionStatus


class CredentialStore(ABC):
    """Holds the persisted device descriptors."""

    @abstractmethod
    async def open(self) -> None:
        """Prepare the backing storage (create it when missing)."""
        raise NotImplementedError

    @abstractmethod
    async def load(self) -> Config:
        raise NotImplementedError

    @abstractmethod
    async def save(self, config: Config) -> None:
        """Persist config. Raises ConfigPersistError on failure."""
        raise NotImplementedError


class DiscoveryProbe(ABC):
    """Performs one network probe per call."""

    @abstractmethod
    async def probe(self) -> list[DiscoveredDevice]:
        """Return a snapshot list of currently visible devices.

        Raises DiscoveryError when the probe transport fails.
        """
        raise NotImplementedError


class CameraHandle(ABC):
    """Connected device handle."""

    @property
    @abstractmethod
    def device_info(self) -> DeviceInfo:
        raise NotImplementedError

    @property
    @abstractmethod
    def profiles(self) -> list[MediaProfile]:
        raise NotImplementedError

    @property
    def default_profile(self) -> MediaProfile | None:
        """Profile used when no (or an unknown) profile is selected."""
        profiles = self.profiles
        return profiles[0] if profiles else None

    @property
    def has_ptz(self) -> bool:
        return any(profile.ptz for profile in self.profiles)

    @abstractmethod
    async def scopes(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    async def snapshot(self, profile_token: str) -> Snapshot:
        raise NotImplementedError

    @abstractmethod
    async def ptz_move(
        self,
        profile_token: str,
        *,
        x: float,
        y: float,
        z: float,
        timeout_s: float | None = None,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def ptz_stop(self, profile_token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def ptz_goto_home(self, profile_token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Release transport sessions."""
        raise NotImplementedError


class DeviceConnector(ABC):
    """Opens connected handles from endpoint and credentials."""

    @abstractmethod
    async def connect(self, host: str, port: int, username: str, password: str) -> CameraHandle:
        """Connect and fetch identity and profiles.

        Raises ConnectError on transport, auth or protocol failure.
        """
        raise NotImplementedError


class DeviceHost(ABC):
    """The part of the host runtime a device talks to."""

    @abstractmethod
    def handle_device_added(self, device: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def handle_device_removed(self, device: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def notify_property_changed(self, device: Any, name: str, value: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def notify_action_status(self, device: Any, action_id: str, status: ActionStatus) -> None:
        raise NotImplementedError
