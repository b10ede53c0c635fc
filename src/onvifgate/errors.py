"""Error hierarchy for the ONVIF gateway."""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for gateway errors.

    Every error is scoped to one device or one discovery pass; none of them
    is fatal to the process. Preserves stack traces via exception chaining.
    """

    def __init__(
        self, message: str, *, device_key: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.device_key = device_key
        self.cause = cause
        self.__cause__ = cause


class DiscoveryError(GatewayError):
    """WS-Discovery probe failed."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(f"Discovery probe failed: {cause}", cause=cause)


class ConnectError(GatewayError):
    """Connecting to a device failed (transport, auth or protocol error)."""

    def __init__(self, device_key: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to connect to {device_key}: {cause}", device_key=device_key, cause=cause
        )


class CapabilityMismatch(GatewayError):
    """Connected device does not advertise the expected capability marker."""

    def __init__(self, device_key: str, marker: str) -> None:
        super().__init__(
            f"Device {device_key} does not advertise {marker}", device_key=device_key
        )
        self.marker = marker


class SubprocessError(GatewayError):
    """Transcode subprocess could not be spawned or failed at runtime."""

    def __init__(self, device_key: str, message: str, cause: Exception | None = None) -> None:
        super().__init__(message, device_key=device_key, cause=cause)


class ConfigPersistError(GatewayError):
    """Writing the device configuration failed."""

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(f"Failed to save config to {path}: {cause}", cause=cause)
        self.path = path


class PropertyError(GatewayError):
    """Host attempted an invalid property write."""

    def __init__(self, device_key: str, property_name: str, message: str) -> None:
        super().__init__(message, device_key=device_key)
        self.property_name = property_name


class ActionError(GatewayError):
    """Host requested an unknown action or the action failed."""

    def __init__(
        self, device_key: str, action_name: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__(message, device_key=device_key, cause=cause)
        self.action_name = action_name


class FfmpegNotInstalledError(GatewayError):
    """The ffmpeg binary is missing or ``-version`` failed."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"{binary} is not installed")
        self.binary = binary
