"""Gateway configuration models."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class DeviceDescriptor(BaseModel):
    """One configured (or auto-discovered stub) ONVIF device.

    ``address`` is the device service endpoint. Older configs name it
    ``endpoint`` or ``xaddr``; both are accepted on input.
    """

    model_config = {"populate_by_name": True}

    address: str = Field(
        default="",
        validation_alias=AliasChoices("address", "endpoint", "xaddr"),
        description="ONVIF device service URL, e.g. http://10.0.0.5/onvif/device_service.",
    )
    username: str = ""
    password: str = ""
    urn: str | None = Field(
        default=None,
        description="WS-Discovery endpoint reference (urn:uuid:...) when known.",
    )
    note: str = Field(default="", description="Free-form operator note.")

    @property
    def is_complete(self) -> bool:
        return bool(self.address and self.username and self.password)

    @property
    def is_stub(self) -> bool:
        return not self.username and not self.password


class DiscoveryConfig(BaseModel):
    """WS-Discovery probe settings."""

    model_config = {"extra": "forbid"}

    timeout_s: float = Field(
        default=4.0,
        gt=0.0,
        description="Seconds to wait per probe for camera responses.",
    )
    attempts: int = Field(default=1, ge=1, description="Probe rounds per discovery pass.")
    ttl: int = Field(default=4, ge=1, description="UDP multicast time-to-live.")
    interval_s: float = Field(
        default=0.0,
        ge=0.0,
        description="Seconds between discovery passes (0 = probe once at startup).",
    )


class TranscodeConfig(BaseModel):
    """ffmpeg transcode settings shared by all devices."""

    model_config = {"extra": "forbid"}

    media_root: str = Field(
        default="./media",
        description="Directory holding one working directory per device.",
    )
    media_url_prefix: str = Field(
        default="/media",
        description="URL path under which media_root is served; used for property links.",
    )
    ffmpeg_bin: str = "ffmpeg"
    stream_on_attach: bool = Field(
        default=False,
        description="Start transcoding as soon as a device is attached.",
    )
    high_quality: bool = Field(
        default=False,
        description="Initial value of each device's highQuality property.",
    )
    segment_duration_s: int = Field(default=1, ge=1)
    window_size: int = Field(default=5, ge=1)
    kill_timeout_s: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds after SIGTERM before SIGKILL is sent once.",
    )
    spawn_retry_s: float = Field(
        default=5.0,
        ge=0.0,
        description="Delay before relaunching after a failed spawn.",
    )


class SnapshotConfig(BaseModel):
    """Periodic snapshot polling."""

    model_config = {"extra": "forbid"}

    interval_s: float = Field(default=10.0, gt=0.0)


class HealthConfig(BaseModel):
    """Health endpoint configuration."""

    model_config = {"extra": "forbid"}

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=8081, ge=0, le=65535)


class Config(BaseModel):
    """Root configuration model."""

    model_config = {"extra": "forbid"}

    devices: list[DeviceDescriptor] = Field(default_factory=list)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
