"""Tests for ONVIF camera client wrappers."""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from typing import Any

import pytest

from onvifgate.errors import ConnectError
from onvifgate.onvif.client import OnvifCameraClient, OnvifConnector


class _FakeDeviceService:
    async def GetDeviceInformation(self) -> SimpleNamespace:
        return SimpleNamespace(
            Manufacturer="Acme",
            Model="CamPro",
            FirmwareVersion="1.2.3",
            SerialNumber="SN123",
            HardwareId="HW456",
        )

    async def GetScopes(self) -> list[Any]:
        return [
            SimpleNamespace(ScopeItem="onvif://www.onvif.org/type/Network_Video_Transmitter"),
            SimpleNamespace(ScopeItem="onvif://www.onvif.org/type/ptz"),
        ]


class _FakeMediaService:
    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []

    async def GetProfiles(self) -> list[Any]:
        return [
            SimpleNamespace(
                token="main-token",
                Name="Main Stream",
                VideoEncoderConfiguration=SimpleNamespace(
                    Encoding="H264",
                    Resolution=SimpleNamespace(Width=1920, Height=1080),
                    RateControl=SimpleNamespace(FrameRateLimit=15, BitrateLimit=4096),
                    Quality=4.0,
                ),
                AudioEncoderConfiguration=SimpleNamespace(Encoding="G711", Bitrate=64, SampleRate=8),
                PTZConfiguration=SimpleNamespace(token="ptz"),
            ),
            SimpleNamespace(
                _token="sub-token",
                Name="Sub Stream",
                VideoEncoderConfiguration=SimpleNamespace(
                    Encoding="H264",
                    Resolution=SimpleNamespace(Width=640, Height=360),
                    FrameRateLimit=10,
                    BitrateLimit=512,
                ),
            ),
        ]

    async def GetStreamUri(self, request: dict[str, Any]) -> Any:
        self.requests.append(request)
        if request["ProfileToken"] == "sub-token":
            raise RuntimeError("stream lookup failed")
        return SimpleNamespace(Uri=f"rtsp://camera/{request['ProfileToken']}")

    async def GetSnapshotUri(self, request: dict[str, Any]) -> Any:
        return SimpleNamespace(Uri=f"http://camera/snap/{request['ProfileToken']}")


class _FakePtzService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def ContinuousMove(self, request: dict[str, Any]) -> None:
        self.calls.append(("ContinuousMove", request))

    async def Stop(self, request: dict[str, Any]) -> None:
        self.calls.append(("Stop", request))

    async def GotoHomePosition(self, request: dict[str, Any]) -> None:
        self.calls.append(("GotoHomePosition", request))


class _FakeOnvifCamera:
    instances: list[Any] = []
    fail_update = False

    def __init__(self, *args: Any) -> None:
        self.args = args
        self.device_service = _FakeDeviceService()
        self.media_service = _FakeMediaService()
        self.ptz_service = _FakePtzService()
        self.update_calls = 0
        self.closed = False
        self.__class__.instances.append(self)

    async def update_xaddrs(self) -> None:
        self.update_calls += 1
        if self.fail_update:
            raise RuntimeError("401 Unauthorized")

    def create_devicemgmt_service(self) -> _FakeDeviceService:
        return self.device_service

    def create_media_service(self) -> _FakeMediaService:
        return self.media_service

    async def create_ptz_service(self) -> _FakePtzService:
        return self.ptz_service

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_camera(monkeypatch: pytest.MonkeyPatch) -> type[_FakeOnvifCamera]:
    _FakeOnvifCamera.instances = []
    _FakeOnvifCamera.fail_update = False
    monkeypatch.setattr("onvifgate.onvif.client._ONVIFCamera", _FakeOnvifCamera)
    return _FakeOnvifCamera


def test_onvif_camera_client_requires_dependency(monkeypatch: pytest.MonkeyPatch) -> None:
    """OnvifCameraClient should fail with actionable message when onvif-zeep-async is unavailable."""
    # Given: onvif-zeep-async is unavailable in runtime
    monkeypatch.setattr("onvifgate.onvif.client._ONVIFCamera", None)

    # When/Then: Instantiating client raises dependency guidance
    with pytest.raises(RuntimeError, match="Missing dependency: onvif-zeep-async"):
        OnvifCameraClient("192.168.1.8", "admin", "password")


@pytest.mark.asyncio
async def test_initialize_reads_info_profiles_and_uris(fake_camera: type[_FakeOnvifCamera]) -> None:
    """initialize() should resolve identity, profiles and per-profile URIs."""
    # Given: A client over a fake camera
    client = OnvifCameraClient("192.168.1.8", "admin", "password", port=8000, wsdl_dir="/tmp/wsdl")

    # When: Initializing
    await client.initialize()

    # Then: Info and profiles are populated; failed lookups leave the URI empty
    camera = fake_camera.instances[0]
    assert camera.args == ("192.168.1.8", 8000, "admin", "password", "/tmp/wsdl")
    assert camera.update_calls == 1
    assert client.device_info.manufacturer == "Acme"
    assert client.device_info.serial_number == "SN123"

    main, sub = client.profiles
    assert main.token == "main-token"
    assert main.stream_uri == "rtsp://camera/main-token"
    assert main.snapshot_uri == "http://camera/snap/main-token"
    assert main.video is not None and main.video.resolution == "1920x1080"
    assert main.video.bitrate_limit_kbps == 4096
    assert main.audio is not None and main.audio.encoding == "G711"
    assert main.ptz is True
    assert sub.token == "sub-token"
    assert sub.stream_uri is None
    assert sub.video is not None and sub.video.frame_rate_limit == 10
    assert sub.audio is None
    assert client.has_ptz is True
    assert client.default_profile is main

    stream_request = camera.media_service.requests[0]
    assert stream_request["StreamSetup"] == {
        "Stream": "RTP-Unicast",
        "Transport": {"Protocol": "RTSP"},
    }


def test_device_info_before_initialize_raises(fake_camera: type[_FakeOnvifCamera]) -> None:
    """Reading identity before initialize() is a programming error."""
    # Given/When/Then: A fresh client
    client = OnvifCameraClient("192.168.1.8", "admin", "password", wsdl_dir="")
    with pytest.raises(RuntimeError, match="initialize"):
        _ = client.device_info


@pytest.mark.asyncio
async def test_stream_uris_report_per_profile_errors(fake_camera: type[_FakeOnvifCamera]) -> None:
    """get_stream_uris() should keep going when one profile fails."""
    # Given: A client
    client = OnvifCameraClient("192.168.1.8", "admin", "password", wsdl_dir="")

    # When: Listing stream URIs
    results = await client.get_stream_uris()

    # Then: One URI and one error
    assert [(r.profile_token, r.uri) for r in results] == [
        ("main-token", "rtsp://camera/main-token"),
        ("sub-token", None),
    ]
    assert results[1].error == "stream lookup failed"


@pytest.mark.asyncio
async def test_scopes_and_ptz_requests(fake_camera: type[_FakeOnvifCamera]) -> None:
    """Scopes should be flattened and PTZ calls mapped onto ONVIF requests."""
    # Given: A client
    client = OnvifCameraClient("192.168.1.8", "admin", "password", wsdl_dir="")

    # When: Reading scopes and issuing PTZ commands
    scopes = await client.scopes()
    await client.ptz_move("main-token", x=0.5, y=-0.5, z=0.0, timeout_s=2.0)
    await client.ptz_move("main-token", x=0.0, y=0.0, z=1.0)
    await client.ptz_stop("main-token")
    await client.ptz_goto_home("main-token")

    # Then: Requests carry the profile token and velocities
    assert scopes == [
        "onvif://www.onvif.org/type/Network_Video_Transmitter",
        "onvif://www.onvif.org/type/ptz",
    ]
    calls = fake_camera.instances[0].ptz_service.calls
    assert calls[0] == (
        "ContinuousMove",
        {
            "ProfileToken": "main-token",
            "Velocity": {"PanTilt": {"x": 0.5, "y": -0.5}, "Zoom": {"x": 0.0}},
            "Timeout": timedelta(seconds=2.0),
        },
    )
    assert "Timeout" not in calls[1][1]
    assert calls[2] == ("Stop", {"ProfileToken": "main-token", "PanTilt": True, "Zoom": True})
    assert calls[3] == ("GotoHomePosition", {"ProfileToken": "main-token"})


@pytest.mark.asyncio
async def test_snapshot_without_uri_raises(fake_camera: type[_FakeOnvifCamera]) -> None:
    """Snapshots need a resolved snapshot URI."""
    # Given: An uninitialized client with no profiles
    client = OnvifCameraClient("192.168.1.8", "admin", "password", wsdl_dir="")

    # When/Then: Requesting a snapshot fails
    with pytest.raises(RuntimeError, match="No snapshot URI"):
        await client.snapshot("main-token")


@pytest.mark.asyncio
async def test_connector_returns_initialized_client(fake_camera: type[_FakeOnvifCamera]) -> None:
    """OnvifConnector should hand back a ready-to-use handle."""
    # Given: A connector
    connector = OnvifConnector(wsdl_dir="/tmp/wsdl")

    # When: Connecting
    client = await connector.connect("192.168.1.8", 80, "admin", "password")

    # Then: Profiles are loaded
    assert [profile.name for profile in client.profiles] == ["Main Stream", "Sub Stream"]

    await client.close()
    assert fake_camera.instances[0].closed is True


@pytest.mark.asyncio
async def test_connector_wraps_failures_and_closes(fake_camera: type[_FakeOnvifCamera]) -> None:
    """A failed handshake should raise ConnectError and release the camera."""
    # Given: A camera rejecting the credentials
    fake_camera.fail_update = True
    connector = OnvifConnector(wsdl_dir="/tmp/wsdl")

    # When/Then: Connecting raises ConnectError keyed by host:port
    with pytest.raises(ConnectError, match="401 Unauthorized") as exc_info:
        await connector.connect("192.168.1.8", 8000, "admin", "wrong")
    assert exc_info.value.device_key == "192.168.1.8:8000"
    assert fake_camera.instances[0].closed is True
