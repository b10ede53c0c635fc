"""ONVIF client wrappers for device info, media profiles, snapshots and PTZ."""

from __future__ import annotations

import inspect
import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, cast

import aiohttp

from onvifgate.errors import ConnectError
from onvifgate.interfaces import CameraHandle, DeviceConnector
from onvifgate.models.camera import (
    AudioEncoderInfo,
    DeviceInfo,
    MediaProfile,
    Snapshot,
    VideoEncoderInfo,
)

logger = logging.getLogger(__name__)

try:
    import onvif as _onvif_pkg  # type: ignore[import-not-found]
    from onvif import ONVIFCamera as _ONVIFCamera  # type: ignore[import-not-found]
except Exception:  # pragma: no cover - exercised via dependency guard tests
    _onvif_pkg = None
    _ONVIFCamera = None

_SNAPSHOT_TIMEOUT_S = 10.0
_DEFAULT_SNAPSHOT_MIME = "image/jpeg"


@dataclass(frozen=True, slots=True)
class OnvifStreamUri:
    """RTSP URI lookup result for one media profile."""

    profile_token: str
    profile_name: str
    uri: str | None
    error: str | None


class OnvifCameraClient(CameraHandle):
    """Thin async wrapper around onvif-zeep-async ONVIFCamera.

    ``initialize()`` must complete before ``device_info`` and ``profiles``
    are read; ``OnvifConnector`` does this as part of connecting.
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 80,
        wsdl_dir: str | None = None,
    ) -> None:
        camera_class = _require_onvif_camera_class()
        resolved_wsdl = wsdl_dir if wsdl_dir is not None else _default_wsdl_dir()
        self._camera = camera_class(host, port, username, password, resolved_wsdl)
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._initialized = False
        self._device_service: Any | None = None
        self._media_service: Any | None = None
        self._ptz_service: Any | None = None
        self._http: aiohttp.ClientSession | None = None
        self._device_info: DeviceInfo | None = None
        self._profiles: list[MediaProfile] = []

    @property
    def device_info(self) -> DeviceInfo:
        if self._device_info is None:
            raise RuntimeError("OnvifCameraClient.initialize() has not completed")
        return self._device_info

    @property
    def profiles(self) -> list[MediaProfile]:
        return list(self._profiles)

    async def initialize(self) -> None:
        """Fetch device identity and profiles with their stream/snapshot URIs."""
        self._device_info = await self.get_device_info()
        media = await self._media()
        resolved: list[MediaProfile] = []
        for profile in await self.get_media_profiles():
            stream_uri = await _lookup_uri(
                media.GetStreamUri,
                {
                    "StreamSetup": {
                        "Stream": "RTP-Unicast",
                        "Transport": {"Protocol": "RTSP"},
                    },
                    "ProfileToken": profile.token,
                },
            )
            snapshot_uri = await _lookup_uri(
                media.GetSnapshotUri, {"ProfileToken": profile.token}
            )
            resolved.append(replace(profile, stream_uri=stream_uri, snapshot_uri=snapshot_uri))
        self._profiles = resolved

    async def close(self) -> None:
        """Close the underlying ONVIFCamera and its transport sessions."""
        if self._http is not None:
            await self._http.close()
            self._http = None
        close = getattr(self._camera, "close", None)
        if close is not None:
            await close()

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self._camera.update_xaddrs()
            self._initialized = True

    async def get_device_info(self) -> DeviceInfo:
        """Return ONVIF device information."""
        info = await (await self._device()).GetDeviceInformation()
        return DeviceInfo(
            manufacturer=_as_string(getattr(info, "Manufacturer", None)),
            model=_as_string(getattr(info, "Model", None)),
            firmware_version=_as_string(getattr(info, "FirmwareVersion", None)),
            serial_number=_as_string(getattr(info, "SerialNumber", None)),
            hardware_id=_as_string(getattr(info, "HardwareId", None)),
        )

    async def get_media_profiles(self) -> list[MediaProfile]:
        """Return ONVIF media profile summaries (without URIs)."""
        media_profiles = list(await (await self._media()).GetProfiles())
        profiles: list[MediaProfile] = []
        for index, profile in enumerate(media_profiles):
            token = _profile_token(profile, index=index)
            name = _as_string(getattr(profile, "Name", None), fallback=token)
            profiles.append(
                MediaProfile(
                    token=token,
                    name=name,
                    video=_video_encoder(getattr(profile, "VideoEncoderConfiguration", None)),
                    audio=_audio_encoder(getattr(profile, "AudioEncoderConfiguration", None)),
                    ptz=getattr(profile, "PTZConfiguration", None) is not None,
                )
            )
        return profiles

    async def get_stream_uris(self) -> list[OnvifStreamUri]:
        """Return RTSP URI lookup results for each media profile."""
        media = await self._media()
        stream_results: list[OnvifStreamUri] = []
        for profile in await self.get_media_profiles():
            request = {
                "StreamSetup": {
                    "Stream": "RTP-Unicast",
                    "Transport": {"Protocol": "RTSP"},
                },
                "ProfileToken": profile.token,
            }
            try:
                response = await media.GetStreamUri(request)
                uri = _as_optional_string(getattr(response, "Uri", None))
                stream_results.append(
                    OnvifStreamUri(
                        profile_token=profile.token,
                        profile_name=profile.name,
                        uri=uri,
                        error=None if uri is not None else "GetStreamUri returned empty Uri",
                    )
                )
            except Exception as exc:
                stream_results.append(
                    OnvifStreamUri(
                        profile_token=profile.token,
                        profile_name=profile.name,
                        uri=None,
                        error=str(exc),
                    )
                )
        return stream_results

    async def scopes(self) -> list[str]:
        """Return the scope URIs the device advertises."""
        response = await (await self._device()).GetScopes()
        scopes: list[str] = []
        for scope in response or []:
            item = getattr(scope, "ScopeItem", scope)
            if item is not None:
                scopes.append(str(item))
        return scopes

    async def snapshot(self, profile_token: str) -> Snapshot:
        """Fetch one image from the profile's snapshot URI."""
        profile = next((p for p in self._profiles if p.token == profile_token), None)
        if profile is None or not profile.snapshot_uri:
            raise RuntimeError(f"No snapshot URI for profile {profile_token}")

        if self._http is None:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=_SNAPSHOT_TIMEOUT_S)
            )
        auth = None
        if self._username and self._password:
            auth = aiohttp.BasicAuth(self._username, self._password)
        async with self._http.get(profile.snapshot_uri, auth=auth) as response:
            response.raise_for_status()
            data = await response.read()
            mime_type = response.content_type or _DEFAULT_SNAPSHOT_MIME
        return Snapshot(mime_type=mime_type, data=data)

    async def ptz_move(
        self,
        profile_token: str,
        *,
        x: float,
        y: float,
        z: float,
        timeout_s: float | None = None,
    ) -> None:
        request: dict[str, Any] = {
            "ProfileToken": profile_token,
            "Velocity": {"PanTilt": {"x": x, "y": y}, "Zoom": {"x": z}},
        }
        if timeout_s is not None:
            request["Timeout"] = timedelta(seconds=timeout_s)
        await (await self._ptz()).ContinuousMove(request)

    async def ptz_stop(self, profile_token: str) -> None:
        await (await self._ptz()).Stop(
            {"ProfileToken": profile_token, "PanTilt": True, "Zoom": True}
        )

    async def ptz_goto_home(self, profile_token: str) -> None:
        await (await self._ptz()).GotoHomePosition({"ProfileToken": profile_token})

    async def _device(self) -> Any:
        await self._ensure_initialized()
        if self._device_service is None:
            self._device_service = await _resolve(self._camera.create_devicemgmt_service())
        return self._device_service

    async def _media(self) -> Any:
        await self._ensure_initialized()
        if self._media_service is None:
            self._media_service = await _resolve(self._camera.create_media_service())
        return self._media_service

    async def _ptz(self) -> Any:
        await self._ensure_initialized()
        if self._ptz_service is None:
            self._ptz_service = await _resolve(self._camera.create_ptz_service())
        return self._ptz_service


class OnvifConnector(DeviceConnector):
    """Builds initialized OnvifCameraClient handles."""

    def __init__(self, *, wsdl_dir: str | None = None) -> None:
        self._wsdl_dir = wsdl_dir

    async def connect(
        self, host: str, port: int, username: str, password: str
    ) -> OnvifCameraClient:
        device_key = f"{host}:{port}"
        try:
            client = OnvifCameraClient(
                host, username, password, port=port, wsdl_dir=self._wsdl_dir
            )
        except Exception as exc:
            raise ConnectError(device_key, exc) from exc

        try:
            await client.initialize()
        except Exception as exc:
            try:
                await client.close()
            except Exception:
                logger.debug("Closing failed ONVIF client raised", exc_info=True)
            raise ConnectError(device_key, exc) from exc
        return client


def _require_onvif_camera_class() -> type[Any]:
    if _ONVIFCamera is None:
        raise RuntimeError(
            "Missing dependency: onvif-zeep-async. Install with: uv pip install onvif-zeep-async"
        )
    return cast(type[Any], _ONVIFCamera)


def _default_wsdl_dir() -> str:
    """Resolve the WSDL directory bundled with onvif-zeep-async.

    The library's own default (``site-packages/wsdl/``) relies on
    ``data_files`` placement which is unreliable across installers and
    platforms.  We look inside the ``onvif`` package directory first,
    which is always present in the wheel.
    """
    if _onvif_pkg is None:
        return ""
    pkg_dir = os.path.dirname(_onvif_pkg.__file__)
    inside_pkg = os.path.join(pkg_dir, "wsdl")
    if os.path.isdir(inside_pkg):
        return inside_pkg
    site_packages = os.path.dirname(pkg_dir)
    return os.path.join(site_packages, "wsdl")


async def _resolve(value: Any) -> Any:
    # Service factories are coroutines in onvif-zeep-async >= 2.
    if inspect.isawaitable(value):
        return await value
    return value


async def _lookup_uri(method: Any, request: dict[str, Any]) -> str | None:
    try:
        response = await method(request)
    except Exception as exc:
        logger.debug("URI lookup failed for %s: %s", request.get("ProfileToken"), exc)
        return None
    return _as_optional_string(getattr(response, "Uri", None))


def _video_encoder(cfg: Any) -> VideoEncoderInfo | None:
    if cfg is None:
        return None
    resolution = getattr(cfg, "Resolution", None)
    rate_control = getattr(cfg, "RateControl", None)
    return VideoEncoderInfo(
        encoding=_as_optional_string(getattr(cfg, "Encoding", None)),
        width=_as_optional_int(getattr(resolution, "Width", None)),
        height=_as_optional_int(getattr(resolution, "Height", None)),
        frame_rate_limit=_as_optional_int(
            getattr(rate_control, "FrameRateLimit", getattr(cfg, "FrameRateLimit", None))
        ),
        bitrate_limit_kbps=_as_optional_int(
            getattr(rate_control, "BitrateLimit", getattr(cfg, "BitrateLimit", None))
        ),
        quality=_as_optional_float(getattr(cfg, "Quality", None)),
    )


def _audio_encoder(cfg: Any) -> AudioEncoderInfo | None:
    if cfg is None:
        return None
    return AudioEncoderInfo(
        encoding=_as_optional_string(getattr(cfg, "Encoding", None)),
        bitrate_kbps=_as_optional_int(getattr(cfg, "Bitrate", None)),
        sample_rate_khz=_as_optional_int(getattr(cfg, "SampleRate", None)),
    )


def _profile_token(profile: Any, *, index: int) -> str:
    for attr in ("token", "_token", "Token"):
        value = getattr(profile, attr, None)
        if isinstance(value, str) and value:
            return value
    return f"profile-{index}"


def _as_string(value: Any, *, fallback: str = "") -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return fallback
    return str(value)


def _as_optional_string(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _as_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


__all__ = [
    "OnvifCameraClient",
    "OnvifConnector",
    "OnvifStreamUri",
]
