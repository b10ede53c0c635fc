"""Tests for ffmpeg installation and version detection."""

from __future__ import annotations

import subprocess
from typing import Any

import pytest

from onvifgate.transcode.capabilities import (
    FfmpegCapabilities,
    FfmpegCapabilityCache,
    FfmpegVersion,
    detect_ffmpeg,
    parse_ffmpeg_version,
)


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("ffmpeg version 4.1.6-1~deb10u1 Copyright (c) 2000-2020", FfmpegVersion(4, 1)),
        ("ffmpeg version n6.0 Copyright (c) 2000-2023", FfmpegVersion(6, 0)),
        ("ffmpeg version 3.4.8 Copyright", FfmpegVersion(3, 4)),
        ("ffmpeg version N-112345-g1234abcd Copyright", None),
        ("", None),
    ],
)
def test_parse_ffmpeg_version(output: str, expected: FfmpegVersion | None) -> None:
    """Version parsing should handle distro, tagged and git builds."""
    # Given: Raw `ffmpeg -version` output

    # When: Parsing it
    version = parse_ffmpeg_version(output)

    # Then: Release builds parse and git builds are unknown
    assert version == expected


def test_feature_gates_follow_version() -> None:
    """DASH streaming needs 4.x and the HLS playlist needs 4.1."""
    # Given: Capabilities for several versions
    v3 = FfmpegCapabilities("ffmpeg", True, FfmpegVersion(3, 4))
    v40 = FfmpegCapabilities("ffmpeg", True, FfmpegVersion(4, 0))
    v41 = FfmpegCapabilities("ffmpeg", True, FfmpegVersion(4, 1))
    unknown = FfmpegCapabilities("ffmpeg", True, None)

    # When/Then: Gates open at the documented versions
    assert (v3.supports_dash_streaming, v3.supports_hls_playlist) == (False, False)
    assert (v40.supports_dash_streaming, v40.supports_hls_playlist) == (True, False)
    assert (v41.supports_dash_streaming, v41.supports_hls_playlist) == (True, True)
    assert (unknown.supports_dash_streaming, unknown.supports_hls_playlist) == (False, False)


def test_detect_ffmpeg_reads_version(monkeypatch: pytest.MonkeyPatch) -> None:
    """detect_ffmpeg should run `-version` and parse stdout."""
    calls: list[list[str]] = []

    def _fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="ffmpeg version 5.1.2 Copyright\n", stderr="")

    # Given: A working ffmpeg binary
    monkeypatch.setattr("onvifgate.transcode.capabilities.subprocess.run", _fake_run)

    # When: Detecting it
    caps = detect_ffmpeg("/opt/ffmpeg")

    # Then: It is installed with the parsed version
    assert calls == [["/opt/ffmpeg", "-version"]]
    assert caps.installed is True
    assert caps.version == FfmpegVersion(5, 1)
    assert caps.describe()[0] == "/opt/ffmpeg: version 5.1"


def test_detect_ffmpeg_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing binary should report not installed instead of raising."""

    def _fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(cmd[0])

    # Given: No ffmpeg on PATH
    monkeypatch.setattr("onvifgate.transcode.capabilities.subprocess.run", _fake_run)

    # When: Detecting it
    caps = detect_ffmpeg()

    # Then: It is reported as not installed
    assert caps.installed is False
    assert caps.describe() == ["ffmpeg: not installed"]


def test_detect_ffmpeg_nonzero_exit(monkeypatch: pytest.MonkeyPatch) -> None:
    """A non-zero `-version` exit code means ffmpeg is unusable."""

    def _fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="broken")

    # Given: ffmpeg that fails to report its version
    monkeypatch.setattr("onvifgate.transcode.capabilities.subprocess.run", _fake_run)

    # When/Then: It is not installed
    assert detect_ffmpeg().installed is False


def test_capability_cache_runs_detection_once(monkeypatch: pytest.MonkeyPatch) -> None:
    """The cache should only run `-version` once per binary."""
    calls: list[str] = []

    def _fake_detect(binary: str) -> FfmpegCapabilities:
        calls.append(binary)
        return FfmpegCapabilities(binary, True, FfmpegVersion(6, 0))

    # Given: A fresh cache
    monkeypatch.setattr("onvifgate.transcode.capabilities.detect_ffmpeg", _fake_detect)
    cache = FfmpegCapabilityCache()

    # When: Looking up the same binary twice, then another binary
    first = cache.get("ffmpeg")
    second = cache.get("ffmpeg")
    cache.get("/opt/ffmpeg")

    # Then: Detection ran once per binary
    assert first is second
    assert calls == ["ffmpeg", "/opt/ffmpeg"]

    # When: Resetting
    cache.reset()
    cache.get("ffmpeg")

    # Then: Detection runs again
    assert calls == ["ffmpeg", "/opt/ffmpeg", "ffmpeg"]
