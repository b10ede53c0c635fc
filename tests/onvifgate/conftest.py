"""Shared pytest fixtures for gateway tests."""

from __future__ import annotations

import sys
from pathlib import Path

# Add src to sys.path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path.resolve()) not in sys.path:
    sys.path.insert(0, str(src_path.resolve()))

import pytest

from onvifgate.models.config import SnapshotConfig, TranscodeConfig
from onvifgate.transcode.capabilities import FfmpegCapabilities, FfmpegVersion
from tests.onvifgate.mocks import FakeSpawner


@pytest.fixture
def ffmpeg_41() -> FfmpegCapabilities:
    """ffmpeg new enough for every gated flag."""
    return FfmpegCapabilities(binary="ffmpeg", installed=True, version=FfmpegVersion(4, 1))


@pytest.fixture
def transcode_config(tmp_path: Path) -> TranscodeConfig:
    return TranscodeConfig(
        media_root=str(tmp_path / "media"),
        kill_timeout_s=0.05,
        spawn_retry_s=0.02,
    )


@pytest.fixture
def snapshot_config() -> SnapshotConfig:
    return SnapshotConfig(interval_s=3600.0)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()
