"""Tests for device identity helpers."""

from __future__ import annotations

import pytest

from onvifgate.gateway.identity import (
    KnownDeviceSet,
    build_stub_descriptor,
    device_id_for,
    find_descriptor,
    is_network_video_transmitter,
    split_endpoint,
)
from onvifgate.models.config import DeviceDescriptor
from tests.onvifgate.mocks import make_discovered


def test_known_device_set_matches_any_key() -> None:
    """A device should count as known when any of its keys is present."""
    # Given: A set holding one endpoint and one URN
    known = KnownDeviceSet()
    known.add("http://10.0.0.5/onvif/device_service", None, "")
    known.add("urn:uuid:cam-2")

    # When/Then: Lookups hit on either key and blank keys are ignored
    assert known.contains_any("http://10.0.0.9/onvif/device_service", "urn:uuid:cam-2")
    assert known.contains_any("http://10.0.0.5/onvif/device_service", None)
    assert not known.contains_any(None, "")
    assert len(known) == 2

    # When: Discarding a key
    known.discard("urn:uuid:cam-2", None)

    # Then: Only the endpoint remains
    assert list(known) == ["http://10.0.0.5/onvif/device_service"]


def test_both_transmitter_tag_spellings_are_accepted() -> None:
    """Either protocol revision's tag should qualify a device."""
    # Given/When/Then: Each spelling
    assert is_network_video_transmitter({"dn:NetworkVideoTransmitter"})
    assert is_network_video_transmitter({"tds:Device", "tdn:NetworkVideoTransmitter"})
    assert not is_network_video_transmitter({"tds:Device"})
    assert not is_network_video_transmitter(set())


def test_find_descriptor_takes_first_match_in_store_order() -> None:
    """The first descriptor matching by endpoint or URN should win."""
    # Given: A URN match listed before an endpoint match
    device = make_discovered("http://10.0.0.5/onvif/device_service", "urn:uuid:cam-1")
    by_urn = DeviceDescriptor(address="http://old-ip/onvif/device_service", urn="urn:uuid:cam-1")
    by_address = DeviceDescriptor(address="http://10.0.0.5/onvif/device_service")

    # When: Matching
    match = find_descriptor([by_urn, by_address], device)

    # Then: Store order decides
    assert match is by_urn
    assert find_descriptor([by_address, by_urn], device) is by_address


def test_find_descriptor_is_exact_and_ignores_blank_urn() -> None:
    """Matching should be case-sensitive and never match on a missing URN."""
    # Given: A device without URN and descriptors that only differ in case
    device = make_discovered("http://10.0.0.5/onvif/device_service", None)
    descriptors = [
        DeviceDescriptor(address="HTTP://10.0.0.5/onvif/device_service"),
        DeviceDescriptor(address="http://other/onvif/device_service", urn=None),
    ]

    # When/Then: Nothing matches
    assert find_descriptor(descriptors, device) is None


def test_build_stub_descriptor_copies_identity_and_blanks_credentials() -> None:
    """A stub should carry endpoint, URN and name with empty credentials."""
    # Given: A discovered camera
    device = make_discovered(name="Porch")

    # When: Building a stub
    stub = build_stub_descriptor(device)

    # Then: Identity is copied and credentials are blank
    assert stub.address == device.service_endpoint
    assert stub.urn == device.urn
    assert stub.note == "Porch"
    assert stub.username == ""
    assert stub.password == ""
    assert stub.is_stub
    assert not stub.is_complete


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("http://10.0.0.5/onvif/device_service", ("10.0.0.5", 80)),
        ("http://10.0.0.5:8000/onvif/device_service", ("10.0.0.5", 8000)),
        ("https://cam.local/onvif/device_service", ("cam.local", 443)),
        ("10.0.0.7:8080", ("10.0.0.7", 8080)),
        ("http://[fe80::1]:8899/onvif", ("fe80::1", 8899)),
    ],
)
def test_split_endpoint(address: str, expected: tuple[str, int]) -> None:
    """split_endpoint should default the port by scheme."""
    # Given/When/Then: Various endpoint spellings
    assert split_endpoint(address) == expected


def test_split_endpoint_rejects_missing_host() -> None:
    """An address without host cannot be connected to."""
    # Given/When/Then: A hostless URL
    with pytest.raises(ValueError, match="has no host"):
        split_endpoint("http:///onvif/device_service")


def test_device_id_uses_last_urn_segment() -> None:
    """Device ids should be stable across address changes."""
    # Given/When/Then: URN and endpoint fallbacks
    assert device_id_for("urn:uuid:2419d68a-2dd2", "http://10.0.0.5/") == "onvif-2419d68a-2dd2"
    assert device_id_for(None, "http://10.0.0.5:8000/x") == "onvif-10.0.0.5-8000"
