"""Fakes for gateway collaborators."""

from tests.onvifgate.mocks.camera import (
    FakeCameraHandle,
    FakeConnector,
    FakeDevice,
    make_profile,
)
from tests.onvifgate.mocks.discovery import FakeProbe, make_discovered
from tests.onvifgate.mocks.process import FakeProcess, FakeSpawner, wait_for_condition
from tests.onvifgate.mocks.store import MemoryCredentialStore

__all__ = [
    "FakeCameraHandle",
    "FakeConnector",
    "FakeDevice",
    "FakeProbe",
    "FakeProcess",
    "FakeSpawner",
    "MemoryCredentialStore",
    "make_discovered",
    "make_profile",
    "wait_for_condition",
]
