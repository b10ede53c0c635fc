"""ffmpeg transcode planning and process supervision."""

from onvifgate.transcode.capabilities import (
    FfmpegCapabilities,
    FfmpegVersion,
    detect_ffmpeg,
    get_ffmpeg_capabilities,
)
from onvifgate.transcode.plan import PlanError, TranscodePlan, build_transcode_plan
from onvifgate.transcode.supervisor import TranscodeSupervisor, spawn_ffmpeg

__all__ = [
    "FfmpegCapabilities",
    "FfmpegVersion",
    "PlanError",
    "TranscodePlan",
    "TranscodeSupervisor",
    "build_transcode_plan",
    "detect_ffmpeg",
    "get_ffmpeg_capabilities",
    "spawn_ffmpeg",
]
