"""Camera device exposed to the host: properties, PTZ actions, snapshots and streaming."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import Coroutine, Sequence
from pathlib import Path
from typing import Any

from onvifgate.errors import ActionError, PropertyError
from onvifgate.gateway.identity import PTZ_SCOPE
from onvifgate.gateway.properties import (
    PTZ_ACTIONS,
    ActionDescription,
    CameraProperty,
    Link,
    PropertyDescription,
    read_only,
)
from onvifgate.interfaces import CameraHandle, DeviceHost
from onvifgate.models.camera import MediaProfile, Snapshot
from onvifgate.models.config import SnapshotConfig, TranscodeConfig
from onvifgate.models.enums import ActionStatus, QualityTier
from onvifgate.transcode.capabilities import FfmpegCapabilities
from onvifgate.transcode.plan import (
    MANIFEST_NAME,
    PLAYLIST_NAME,
    TranscodePlan,
    build_transcode_plan,
)
from onvifgate.transcode.supervisor import SpawnFn, TranscodeSupervisor, spawn_ffmpeg

logger = logging.getLogger(__name__)

_DASH_MEDIA_TYPE = "application/dash+xml"
_HLS_MEDIA_TYPE = "application/vnd.apple.mpegurl"
_DEFAULT_SNAPSHOT_MIME = "image/jpeg"
_IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/bmp": "bmp",
}


class CameraDevice:
    """One attached camera.

    Owns the connected handle, the transcode supervisor and the snapshot
    poller. Property writes update the cached value, notify the host and
    schedule the supervisor transition without waiting for it.
    """

    def __init__(
        self,
        *,
        device_id: str,
        title: str,
        handle: CameraHandle,
        host: DeviceHost,
        username: str,
        password: str,
        scopes: Sequence[str],
        identity_keys: Sequence[str],
        transcode: TranscodeConfig,
        snapshot: SnapshotConfig,
        capabilities: FfmpegCapabilities,
        spawn: SpawnFn = spawn_ffmpeg,
    ) -> None:
        self.id = device_id
        self.title = title
        self._handle = handle
        self._host = host
        self._username = username
        self._password = password
        self._scopes = tuple(scopes)
        self._identity_keys = tuple(key for key in identity_keys if key)
        self._transcode = transcode
        self._snapshot_config = snapshot
        self._capabilities = capabilities
        self._output_dir = Path(transcode.media_root) / device_id
        self._media_url = f"{transcode.media_url_prefix.rstrip('/')}/{device_id}"
        self._log_extra = {"camera_name": device_id}

        default_profile = handle.default_profile
        self._profile_name = default_profile.name if default_profile is not None else None
        self._supervisor = TranscodeSupervisor(
            device_id=device_id,
            binary=transcode.ffmpeg_bin,
            plan_builder=self._build_plan,
            profile_name=self._profile_name,
            quality=QualityTier.from_flag(transcode.high_quality),
            spawn=spawn,
            kill_timeout_s=transcode.kill_timeout_s,
            spawn_retry_s=transcode.spawn_retry_s,
        )

        self._properties: dict[str, CameraProperty] = {}
        self._actions: dict[str, ActionDescription] = {}
        self._build_properties()
        if self.has_ptz:
            self._actions = {action.name: action for action in PTZ_ACTIONS}

        self._snapshot_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def handle(self) -> CameraHandle:
        return self._handle

    @property
    def supervisor(self) -> TranscodeSupervisor:
        return self._supervisor

    @property
    def identity_keys(self) -> tuple[str, ...]:
        return self._identity_keys

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def has_ptz(self) -> bool:
        return PTZ_SCOPE in self._scopes or self._handle.has_ptz

    @property
    def properties(self) -> dict[str, CameraProperty]:
        return dict(self._properties)

    @property
    def actions(self) -> dict[str, ActionDescription]:
        return dict(self._actions)

    def get_property(self, name: str) -> Any:
        prop = self._properties.get(name)
        return prop.value if prop is not None else None

    def describe(self) -> dict[str, Any]:
        """Thing-style description handed to the host."""
        info = self._handle.device_info
        return {
            "id": self.id,
            "title": self.title,
            "description": f"{info.manufacturer} {info.model}".strip(),
            "properties": {name: prop.as_dict() for name, prop in self._properties.items()},
            "actions": {
                name: action.model_dump(exclude_none=True) for name, action in self._actions.items()
            },
        }

    async def attach(self) -> None:
        """Start background work after the host has accepted the device."""
        self._snapshot_task = asyncio.create_task(self._poll_snapshots())
        if self._transcode.stream_on_attach:
            await self._supervisor.start()

    async def close(self) -> None:
        """Stop streaming for good, cancel polling and release the handle."""
        if self._closed:
            return
        self._closed = True

        snapshot_task = self._snapshot_task
        self._snapshot_task = None
        if snapshot_task is not None:
            snapshot_task.cancel()
            try:
                await snapshot_task
            except asyncio.CancelledError:
                pass

        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

        await self._supervisor.close()
        try:
            await self._handle.close()
        except Exception as exc:
            logger.warning("Failed to close device handle: %s", exc, extra=self._log_extra)
        logger.info("Closed device %s", self.id, extra=self._log_extra)

    def set_property(self, name: str, value: Any) -> Any:
        """Apply a host write and return the accepted value.

        Raises:
            PropertyError: Unknown or read-only property, or invalid value
        """
        prop = self._properties.get(name)
        if prop is None:
            raise PropertyError(self.id, name, f"Unknown property {name!r}")
        if not prop.writable:
            raise PropertyError(self.id, name, f"Property {name!r} is read-only")

        if name in ("streamActive", "highQuality"):
            if not isinstance(value, bool):
                raise PropertyError(self.id, name, f"{name} must be a boolean")
        elif name == "profile":
            if value not in (prop.description.enum or []):
                raise PropertyError(self.id, name, f"Unknown profile {value!r}")

        self._update_property(name, value)
        if name == "streamActive":
            self._schedule(self._supervisor.start() if value else self._supervisor.stop())
        elif name == "highQuality":
            self._schedule(self._supervisor.set_quality(QualityTier.from_flag(value)))
        elif name == "profile":
            self._profile_name = value
            self._refresh_info_properties()
            self._schedule(self._supervisor.select_profile(value))
        return value

    async def perform_action(
        self, name: str, action_input: dict[str, Any] | None = None
    ) -> ActionStatus:
        """Run a PTZ action, reporting pending and final status to the host."""
        action_id = uuid.uuid4().hex
        if name not in self._actions:
            logger.warning("Unknown action %r", name, extra=self._log_extra)
            self._host.notify_action_status(self, action_id, ActionStatus.ERROR)
            return ActionStatus.ERROR

        self._host.notify_action_status(self, action_id, ActionStatus.PENDING)
        try:
            await self._run_action(name, action_input or {})
        except Exception as exc:
            error = exc if isinstance(exc, ActionError) else ActionError(
                self.id, name, f"Action {name} failed: {exc}", exc
            )
            logger.error("%s", error, extra=self._log_extra)
            self._host.notify_action_status(self, action_id, ActionStatus.ERROR)
            return ActionStatus.ERROR

        self._host.notify_action_status(self, action_id, ActionStatus.COMPLETED)
        return ActionStatus.COMPLETED

    async def refresh_snapshot(self) -> Snapshot | None:
        """Fetch one snapshot and write it to ``<output_dir>/image.<ext>``."""
        profile = self._current_profile()
        if profile is None or not profile.snapshot_uri:
            return None

        snapshot = await self._handle.snapshot(profile.token)
        mime_type = snapshot.mime_type or _DEFAULT_SNAPSHOT_MIME
        path = self._output_dir / f"image.{_image_extension(mime_type)}"
        await asyncio.to_thread(_write_atomic, path, snapshot.data)

        if self._properties["snapshotMimeType"].set_cached_value(mime_type):
            self._host.notify_property_changed(self, "snapshotMimeType", mime_type)
            self._properties["snapshot"].description.links = [self._snapshot_link(mime_type)]
        self._host.notify_property_changed(self, "snapshot", self.get_property("snapshot"))
        return snapshot

    def _build_plan(self, profile_name: str | None, quality: QualityTier) -> TranscodePlan:
        return build_transcode_plan(
            device_id=self.id,
            profiles=self._handle.profiles,
            selected_profile=profile_name,
            username=self._username,
            password=self._password,
            scopes=self._scopes,
            quality=quality,
            capabilities=self._capabilities,
            output_dir=self._output_dir,
            segment_duration_s=self._transcode.segment_duration_s,
            window_size=self._transcode.window_size,
        )

    def _build_properties(self) -> None:
        profile_names = [profile.name for profile in self._handle.profiles]
        self._add(
            PropertyDescription(
                name="streamActive", title="Streaming", type="boolean", read_only=False
            ),
            self._transcode.stream_on_attach,
        )
        self._add(
            PropertyDescription(
                name="profile",
                title="Profile",
                type="string",
                read_only=False,
                enum=profile_names,
            ),
            self._profile_name,
        )
        self._add(
            PropertyDescription(
                name="highQuality", title="High Quality", type="boolean", read_only=False
            ),
            self._transcode.high_quality,
        )

        stream_links = [Link(href=f"{self._media_url}/{MANIFEST_NAME}", media_type=_DASH_MEDIA_TYPE)]
        if self._capabilities.supports_hls_playlist:
            stream_links.append(
                Link(href=f"{self._media_url}/{PLAYLIST_NAME}", media_type=_HLS_MEDIA_TYPE)
            )
        self._add(
            PropertyDescription(
                name="stream",
                title="Stream",
                type="null",
                at_type="VideoProperty",
                links=stream_links,
            )
        )
        self._add(
            PropertyDescription(
                name="snapshot",
                title="Snapshot",
                type="null",
                at_type="ImageProperty",
                links=[self._snapshot_link(_DEFAULT_SNAPSHOT_MIME)],
            )
        )
        self._add(read_only("snapshotMimeType", "Snapshot MIME Type", "string"))

        self._add(read_only("videoEncoding", "Video Encoding", "string"))
        self._add(read_only("videoResolution", "Video Resolution", "string"))
        self._add(read_only("videoBitRate", "Video Bit Rate", "number", unit="kbps"))
        self._add(read_only("videoFrameRate", "Video Frame Rate", "number", unit="fps"))
        self._add(read_only("videoQuality", "Video Quality", "number"))

        profile = self._current_profile()
        if profile is not None and profile.audio is not None:
            self._add(read_only("audioEncoding", "Audio Encoding", "string"))
            self._add(read_only("audioBitRate", "Audio Bit Rate", "number", unit="kbps"))
            self._add(read_only("audioSampleRate", "Audio Sample Rate", "number", unit="kHz"))
        self._refresh_info_properties(notify=False)

    def _refresh_info_properties(self, *, notify: bool = True) -> None:
        profile = self._current_profile()
        video = profile.video if profile is not None else None
        audio = profile.audio if profile is not None else None
        values: dict[str, Any] = {
            "videoEncoding": video.encoding if video else None,
            "videoResolution": video.resolution if video else None,
            "videoBitRate": video.bitrate_limit_kbps if video else None,
            "videoFrameRate": video.frame_rate_limit if video else None,
            "videoQuality": video.quality if video else None,
            "audioEncoding": audio.encoding if audio else None,
            "audioBitRate": audio.bitrate_kbps if audio else None,
            "audioSampleRate": audio.sample_rate_khz if audio else None,
        }
        for name, value in values.items():
            if name not in self._properties:
                continue
            if notify:
                self._update_property(name, value)
            else:
                self._properties[name].value = value

    def _add(self, description: PropertyDescription, value: Any = None) -> None:
        self._properties[description.name] = CameraProperty(description, value)

    def _update_property(self, name: str, value: Any) -> None:
        if self._properties[name].set_cached_value(value):
            self._host.notify_property_changed(self, name, value)

    def _snapshot_link(self, mime_type: str) -> Link:
        return Link(
            href=f"{self._media_url}/image.{_image_extension(mime_type)}",
            media_type=mime_type,
        )

    def _current_profile(self) -> MediaProfile | None:
        for profile in self._handle.profiles:
            if profile.name == self._profile_name:
                return profile
        return self._handle.default_profile

    async def _run_action(self, name: str, action_input: dict[str, Any]) -> None:
        profile = self._current_profile()
        if profile is None:
            raise ActionError(self.id, name, "Device has no media profile")

        if name == "move":
            speeds = {}
            for key in ("speedX", "speedY", "speedZ"):
                speed = action_input.get(key)
                if not isinstance(speed, (int, float)) or not -1.0 <= speed <= 1.0:
                    raise ActionError(self.id, name, f"{key} must be a number in [-1, 1]")
                speeds[key] = float(speed)
            timeout = action_input.get("timeout")
            if timeout is not None and (not isinstance(timeout, (int, float)) or timeout < 0):
                raise ActionError(self.id, name, "timeout must be a non-negative number")
            await self._handle.ptz_move(
                profile.token,
                x=speeds["speedX"],
                y=speeds["speedY"],
                z=speeds["speedZ"],
                timeout_s=float(timeout) if timeout is not None else None,
            )
        elif name == "stop":
            await self._handle.ptz_stop(profile.token)
        elif name == "home":
            await self._handle.ptz_goto_home(profile.token)

    async def _poll_snapshots(self) -> None:
        interval = self._snapshot_config.interval_s
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_snapshot()
            except Exception as exc:
                logger.warning("Error fetching snapshot: %s", exc, extra=self._log_extra)

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_scheduled_done)

    def _on_scheduled_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Transcode transition failed: %s", exc, exc_info=exc, extra=self._log_extra
            )


def _image_extension(mime_type: str) -> str:
    base = mime_type.split(";", 1)[0].strip().lower()
    return _IMAGE_EXTENSIONS.get(base, "jpg")


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("wb") as handle:
        handle.write(data)
    os.replace(tmp_path, path)
