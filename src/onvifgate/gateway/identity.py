"""Device identity keys, capability markers and descriptor matching."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence
from urllib.parse import urlparse

from onvifgate.models.config import DeviceDescriptor
from onvifgate.models.device import DiscoveredDevice

# Two spellings of the transmitter type tag exist across protocol revisions.
NVT_TYPE_TAGS = frozenset({"dn:NetworkVideoTransmitter", "tdn:NetworkVideoTransmitter"})
NVT_SCOPE = "onvif://www.onvif.org/type/Network_Video_Transmitter"
PTZ_SCOPE = "onvif://www.onvif.org/type/ptz"
AUDIO_ENCODER_SCOPE = "onvif://www.onvif.org/type/audio_encoder"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class KnownDeviceSet:
    """Identity keys of devices already handled in this process.

    A device may be known by more than one key (its service endpoint and its
    URN); a lookup hits when any of them is present.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))

    def contains_any(self, *keys: str | None) -> bool:
        return any(key in self._keys for key in keys if key)

    def add(self, *keys: str | None) -> None:
        self._keys.update(key for key in keys if key)

    def discard(self, *keys: str | None) -> None:
        for key in keys:
            if key:
                self._keys.discard(key)


def is_network_video_transmitter(device_types: Iterable[str]) -> bool:
    return not NVT_TYPE_TAGS.isdisjoint(device_types)


def find_descriptor(
    descriptors: Sequence[DeviceDescriptor], device: DiscoveredDevice
) -> DeviceDescriptor | None:
    """Return the first descriptor matching the device by endpoint or URN.

    Comparison is exact and case-sensitive; store order decides ties.
    """
    for descriptor in descriptors:
        if descriptor.address == device.service_endpoint:
            return descriptor
        if device.urn and descriptor.urn == device.urn:
            return descriptor
    return None


def build_stub_descriptor(device: DiscoveredDevice) -> DeviceDescriptor:
    """Config entry awaiting operator credentials for a discovered device."""
    return DeviceDescriptor(
        address=device.service_endpoint,
        username="",
        password="",
        urn=device.urn,
        note=device.friendly_name,
    )


def split_endpoint(address: str) -> tuple[str, int]:
    """Return (host, port) of a device service URL, defaulting the port by scheme."""
    parsed = urlparse(address if "://" in address else f"http://{address}")
    if not parsed.hostname:
        raise ValueError(f"Device address has no host: {address!r}")
    port = parsed.port
    if port is None:
        port = 443 if parsed.scheme == "https" else 80
    return parsed.hostname, port


def device_id_for(urn: str | None, address: str) -> str:
    """Stable device id: ``onvif-<last URN segment>``, else derived from the endpoint."""
    if urn:
        tail = urn.rsplit(":", 1)[-1]
        if tail:
            return f"onvif-{_UNSAFE_ID_CHARS.sub('-', tail)}"
    host, port = split_endpoint(address)
    return f"onvif-{_UNSAFE_ID_CHARS.sub('-', host)}-{port}"
