"""ffmpeg argument plans for republishing a camera stream as MPEG-DASH."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from onvifgate.gateway.identity import AUDIO_ENCODER_SCOPE
from onvifgate.models.camera import MediaProfile
from onvifgate.models.enums import QualityTier
from onvifgate.transcode.capabilities import FfmpegCapabilities
from onvifgate.transcode.utils import with_credentials

logger = logging.getLogger(__name__)

TARGET_VIDEO_CODEC = "H264"
TARGET_AUDIO_CODEC = "AAC"
MANIFEST_NAME = "index.mpd"
PLAYLIST_NAME = "master.m3u8"


@dataclass(frozen=True, slots=True)
class QualitySettings:
    video_bitrate: str
    h264_profile: str
    audio_bitrate: str


QUALITY_SETTINGS: dict[QualityTier, QualitySettings] = {
    QualityTier.STANDARD: QualitySettings(
        video_bitrate="1000k", h264_profile="main", audio_bitrate="64k"
    ),
    QualityTier.HIGH: QualitySettings(
        video_bitrate="4000k", h264_profile="high", audio_bitrate="128k"
    ),
}


class PlanError(ValueError):
    """No usable profile or stream URI to build a plan from."""

    def __init__(self, device_id: str, message: str) -> None:
        super().__init__(message)
        self.device_id = device_id


class TranscodePlan(BaseModel):
    """Locked ffmpeg invocation for one transcode launch."""

    model_config = {"extra": "forbid"}

    device_id: str
    profile_token: str
    profile_name: str
    input_url: str
    quality: QualityTier
    video_mode: Literal["copy", "libx264"]
    audio_mode: Literal["copy", "aac", "none"]
    args: list[str]
    manifest_path: Path
    playlist_path: Path | None = None

    def plan_id(self) -> str:
        playlist = "hls" if self.playlist_path is not None else "nohls"
        return (
            f"{self.profile_token}:q={self.quality}:v={self.video_mode}"
            f":a={self.audio_mode}:{playlist}"
        )

    def command(self, binary: str) -> list[str]:
        return [binary, *self.args]


def resolve_profile(
    profiles: Sequence[MediaProfile],
    selected_name: str | None,
    *,
    device_id: str,
) -> MediaProfile | None:
    """Find the selected profile by name, falling back to the default (first) one."""
    if not profiles:
        return None
    if selected_name is not None:
        for profile in profiles:
            if profile.name == selected_name:
                return profile
        logger.warning(
            "Selected profile %r not found; falling back to default profile %r",
            selected_name,
            profiles[0].name,
            extra={"camera_name": device_id},
        )
    return profiles[0]


def has_audio(profile: MediaProfile, scopes: Sequence[str]) -> bool:
    return profile.audio is not None or AUDIO_ENCODER_SCOPE in scopes


def build_transcode_plan(
    *,
    device_id: str,
    profiles: Sequence[MediaProfile],
    selected_profile: str | None,
    username: str,
    password: str,
    scopes: Sequence[str],
    quality: QualityTier,
    capabilities: FfmpegCapabilities,
    output_dir: Path,
    segment_duration_s: int = 1,
    window_size: int = 5,
) -> TranscodePlan:
    """Build a fresh argument plan from the camera's current state.

    Raises:
        PlanError: If the camera has no profiles or the profile has no stream URI
    """
    profile = resolve_profile(profiles, selected_profile, device_id=device_id)
    if profile is None:
        raise PlanError(device_id, f"Device {device_id} reports no media profiles")
    if not profile.stream_uri:
        raise PlanError(device_id, f"Profile {profile.name!r} has no stream URI")

    settings = QUALITY_SETTINGS[quality]
    input_url = with_credentials(profile.stream_uri, username, password)

    args = ["-hide_banner", "-loglevel", "warning", "-y"]
    if input_url.lower().startswith("rtsp"):
        args.extend(["-rtsp_transport", "tcp"])
    args.extend(["-fflags", "nobuffer", "-i", input_url])

    video_encoding = profile.video.encoding if profile.video is not None else None
    video_mode: Literal["copy", "libx264"]
    if _codec_matches(video_encoding, TARGET_VIDEO_CODEC):
        video_mode = "copy"
        args.extend(["-c:v", "copy"])
    else:
        video_mode = "libx264"
        args.extend(
            [
                "-c:v",
                "libx264",
                "-preset",
                "veryfast",
                "-tune",
                "zerolatency",
                "-profile:v",
                settings.h264_profile,
                "-pix_fmt",
                "yuv420p",
                "-b:v",
                settings.video_bitrate,
            ]
        )

    audio_mode: Literal["copy", "aac", "none"]
    if not has_audio(profile, scopes):
        audio_mode = "none"
        args.append("-an")
    else:
        audio_encoding = profile.audio.encoding if profile.audio is not None else None
        if _codec_matches(audio_encoding, TARGET_AUDIO_CODEC):
            audio_mode = "copy"
            args.extend(["-c:a", "copy"])
        else:
            audio_mode = "aac"
            args.extend(["-c:a", "aac", "-b:a", settings.audio_bitrate])

    args.extend(["-f", "dash"])
    if capabilities.supports_dash_streaming:
        args.extend(
            [
                "-seg_duration",
                str(segment_duration_s),
                "-window_size",
                str(window_size),
                "-extra_window_size",
                str(window_size),
                "-use_template",
                "1",
                "-use_timeline",
                "1",
                "-remove_at_exit",
                "1",
            ]
        )

    playlist_path: Path | None = None
    if capabilities.supports_hls_playlist:
        args.extend(["-streaming", "1", "-hls_playlist", "1"])
        playlist_path = output_dir / PLAYLIST_NAME

    manifest_path = output_dir / MANIFEST_NAME
    args.append(str(manifest_path))

    return TranscodePlan(
        device_id=device_id,
        profile_token=profile.token,
        profile_name=profile.name,
        input_url=input_url,
        quality=quality,
        video_mode=video_mode,
        audio_mode=audio_mode,
        args=args,
        manifest_path=manifest_path,
        playlist_path=playlist_path,
    )


def _codec_matches(encoding: str | None, target: str) -> bool:
    if encoding is None:
        return False
    normalized = encoding.strip().upper().replace(".", "").replace("-", "")
    return normalized == target
