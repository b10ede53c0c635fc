"""WS-Discovery helpers for finding ONVIF devices on a local network."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from typing import Any, cast
from urllib.parse import unquote, urlparse

from onvifgate.errors import DiscoveryError
from onvifgate.interfaces import DiscoveryProbe
from onvifgate.models.device import DiscoveredDevice

logger = logging.getLogger(__name__)

try:
    from wsdiscovery import QName  # type: ignore[import-untyped]
    from wsdiscovery.discovery import (  # type: ignore[import-untyped]
        ThreadedWSDiscovery as _ThreadedWSDiscovery,
    )
except Exception:  # pragma: no cover - exercised via dependency guard tests
    _ThreadedWSDiscovery = None
    QName = None

# Probe types are ANDed by WS-Discovery, so each type gets its own probe and
# the results are merged.
_ONVIF_DEVICE_TYPE = ("http://www.onvif.org/ver10/device/wsdl", "Device")
_ONVIF_NVT_TYPE = ("http://www.onvif.org/ver10/network/wsdl", "NetworkVideoTransmitter")

_NAMESPACE_PREFIXES = {
    _ONVIF_DEVICE_TYPE[0]: "tds",
    _ONVIF_NVT_TYPE[0]: "dn",
}
_NAME_SCOPE_PREFIX = "onvif://www.onvif.org/name/"


def discover_devices(
    timeout_s: float = 8.0,
    *,
    attempts: int = 2,
    ttl: int = 4,
) -> list[DiscoveredDevice]:
    """Run WS-Discovery and return discovered ONVIF devices.

    Args:
        timeout_s: Seconds to wait per probe for camera responses.
        attempts: Number of probe rounds.  All rounds always run so that
                  slow-responding cameras are not missed; results are
                  deduplicated.
        ttl: UDP multicast time-to-live.  Values >1 allow discovery across
             VLANs / routed subnets.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    discovery_class = _require_wsdiscovery_class()
    onvif_type_sets = _build_onvif_type_sets()

    with _suppress_wsdiscovery_interface_warnings():
        # Some cameras answer with the probe's own MessageID; relates_to keeps
        # those replies from being dropped as duplicates.
        discovery = discovery_class(ttl=ttl, relates_to=True)
        discovery.start()

        try:
            services: list[Any] = []
            for attempt in range(attempts):
                for type_set in onvif_type_sets:
                    services.extend(
                        _search_services(discovery, timeout_s=timeout_s, types=type_set)
                    )
                if attempt < (attempts - 1):
                    time.sleep(0.5)
            return _parse_discovery_services(services)
        finally:
            try:
                discovery.stop()
            except Exception:
                logger.warning("WS-Discovery stop() failed", exc_info=True)


class WsDiscoveryProbe(DiscoveryProbe):
    """Runs one blocking WS-Discovery probe off the event loop."""

    def __init__(self, *, timeout_s: float = 4.0, attempts: int = 1, ttl: int = 4) -> None:
        self._timeout_s = timeout_s
        self._attempts = attempts
        self._ttl = ttl

    async def probe(self) -> list[DiscoveredDevice]:
        try:
            return await asyncio.to_thread(
                discover_devices,
                self._timeout_s,
                attempts=self._attempts,
                ttl=self._ttl,
            )
        except Exception as exc:
            raise DiscoveryError(exc) from exc


def _require_wsdiscovery_class() -> type[Any]:
    if _ThreadedWSDiscovery is None:
        raise RuntimeError(
            "Missing dependency: WSDiscovery. Install with: uv pip install WSDiscovery"
        )
    return cast(type[Any], _ThreadedWSDiscovery)


def _build_onvif_type_sets() -> list[list[Any]]:
    """Return per-type probe lists for separate WS-Discovery probes."""
    if QName is None:
        return [[]]  # single unfiltered probe as fallback
    return [
        [QName(*_ONVIF_DEVICE_TYPE)],
        [QName(*_ONVIF_NVT_TYPE)],
    ]


def _search_services(
    discovery: Any, *, timeout_s: float, types: list[Any] | None
) -> list[Any]:
    try:
        return list(discovery.searchServices(types=types, timeout=timeout_s))
    except TypeError:
        # Fallback for older WSDiscovery versions with different signatures.
        try:
            return list(discovery.searchServices(timeout=timeout_s))
        except TypeError:
            return list(discovery.searchServices())


def _parse_discovery_services(services: list[Any]) -> list[DiscoveredDevice]:
    """Flatten services into one record per XAddr, keeping first-seen order."""
    discovered: list[DiscoveredDevice] = []
    seen: set[str] = set()

    for service in services:
        xaddrs = tuple(str(value) for value in _as_iterable(_safe_call(service, "getXAddrs")))
        scopes = tuple(
            _format_scope(value) for value in _as_iterable(_safe_call(service, "getScopes"))
        )
        types = frozenset(
            _format_type(value) for value in _as_iterable(_safe_call(service, "getTypes"))
        )
        epr = _safe_call(service, "getEPR")
        urn = str(epr) if isinstance(epr, str) and epr else None

        for xaddr in xaddrs:
            ip = _extract_ip(xaddr)
            if ip is None or xaddr in seen:
                continue
            seen.add(xaddr)
            discovered.append(
                DiscoveredDevice(
                    service_endpoint=xaddr,
                    urn=urn,
                    device_types=types,
                    friendly_name=_friendly_name(scopes, fallback=ip),
                    ip=ip,
                    scopes=scopes,
                )
            )

    return discovered


def _friendly_name(scopes: tuple[str, ...], *, fallback: str) -> str:
    for scope in scopes:
        if scope.startswith(_NAME_SCOPE_PREFIX):
            name = unquote(scope[len(_NAME_SCOPE_PREFIX) :]).strip()
            if name:
                return name
    return fallback


def _format_type(value: Any) -> str:
    if isinstance(value, str):
        return value
    local = _safe_call(value, "getLocalname")
    if isinstance(local, str) and local:
        namespace = _safe_call(value, "getNamespace")
        prefix = _NAMESPACE_PREFIXES.get(namespace) if isinstance(namespace, str) else None
        if prefix is None:
            raw_prefix = _safe_call(value, "getNamespacePrefix")
            prefix = raw_prefix if isinstance(raw_prefix, str) else ""
        return f"{prefix}:{local}" if prefix else local
    return str(value)


def _format_scope(value: Any) -> str:
    if isinstance(value, str):
        return value
    uri = _safe_call(value, "getValue")
    if isinstance(uri, str) and uri:
        return uri
    return str(value)


def _safe_call(obj: Any, method_name: str) -> Any:
    method = getattr(obj, method_name, None)
    if method is None:
        return None

    try:
        return method()
    except Exception:
        logger.debug("WS-Discovery method failed: %s", method_name, exc_info=True)
        return None


def _as_iterable(value: Any) -> tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set)):
        return tuple(value)
    return (value,)


def _extract_ip(xaddr: str) -> str | None:
    parsed = urlparse(xaddr if "://" in xaddr else f"http://{xaddr}")
    if parsed.hostname:
        return parsed.hostname
    logger.debug("Could not extract host from WS-Discovery XAddr: %s", xaddr)
    return None


@contextmanager
def _suppress_wsdiscovery_interface_warnings() -> Any:
    """Suppress noisy WSDiscovery interface warnings for non-multicast interfaces."""
    wsdiscovery_logger = logging.getLogger("wsdiscovery")
    original_level = wsdiscovery_logger.level
    wsdiscovery_logger.setLevel(logging.ERROR)
    try:
        yield
    finally:
        wsdiscovery_logger.setLevel(original_level)


__all__ = [
    "WsDiscoveryProbe",
    "discover_devices",
]
