"""Data models for the ONVIF gateway."""

from onvifgate.models.config import (
    Config,
    DeviceDescriptor,
    DiscoveryConfig,
    HealthConfig,
    SnapshotConfig,
    TranscodeConfig,
)
from onvifgate.models.device import DiscoveredDevice
from onvifgate.models.enums import ActionStatus, DesiredState, QualityTier, TranscodeState

__all__ = [
    "ActionStatus",
    "Config",
    "DesiredState",
    "DeviceDescriptor",
    "DiscoveredDevice",
    "DiscoveryConfig",
    "HealthConfig",
    "QualityTier",
    "SnapshotConfig",
    "TranscodeConfig",
    "TranscodeState",
]
