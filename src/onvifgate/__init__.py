"""ONVIF camera gateway."""

__version__ = "0.1.0"

from onvifgate.errors import GatewayError
from onvifgate.models.config import Config, DeviceDescriptor
from onvifgate.models.device import DiscoveredDevice
from onvifgate.models.enums import DesiredState, QualityTier, TranscodeState

__all__ = [
    "Config",
    "DesiredState",
    "DeviceDescriptor",
    "DiscoveredDevice",
    "GatewayError",
    "QualityTier",
    "TranscodeState",
    "__version__",
]
