"""Typed views of a connected camera's capabilities."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Device identity metadata returned by ONVIF GetDeviceInformation."""

    manufacturer: str
    model: str
    firmware_version: str
    serial_number: str
    hardware_id: str


@dataclass(frozen=True, slots=True)
class VideoEncoderInfo:
    """Video encoder configuration of one media profile."""

    encoding: str | None
    width: int | None
    height: int | None
    frame_rate_limit: int | None
    bitrate_limit_kbps: int | None
    quality: float | None = None

    @property
    def resolution(self) -> str | None:
        if self.width is None or self.height is None:
            return None
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class AudioEncoderInfo:
    """Audio encoder configuration of one media profile."""

    encoding: str | None
    bitrate_kbps: int | None
    sample_rate_khz: int | None


@dataclass(frozen=True, slots=True)
class MediaProfile:
    """One ONVIF media profile with its resolved stream/snapshot URIs."""

    token: str
    name: str
    video: VideoEncoderInfo | None
    audio: AudioEncoderInfo | None = None
    stream_uri: str | None = None
    snapshot_uri: str | None = None
    ptz: bool = False


@dataclass(frozen=True, slots=True)
class Snapshot:
    """One JPEG (or other image) frame fetched from the camera."""

    mime_type: str
    data: bytes
