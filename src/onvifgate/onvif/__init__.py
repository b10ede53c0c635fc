"""ONVIF device client and WS-Discovery probe."""

from onvifgate.onvif.client import OnvifCameraClient, OnvifConnector, OnvifStreamUri
from onvifgate.onvif.discovery import WsDiscoveryProbe, discover_devices

__all__ = [
    "OnvifCameraClient",
    "OnvifConnector",
    "OnvifStreamUri",
    "WsDiscoveryProbe",
    "discover_devices",
]
