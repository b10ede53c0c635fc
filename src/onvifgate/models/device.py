"""Transient device records produced by discovery."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class DiscoveredDevice:
    """One WS-Discovery probe result.

    Lives for a single reconciliation pass; only ever distilled into a
    configuration stub or consumed to open a connection.
    """

    service_endpoint: str
    urn: str | None
    device_types: frozenset[str]
    friendly_name: str
    ip: str = ""
    scopes: tuple[str, ...] = field(default=())
