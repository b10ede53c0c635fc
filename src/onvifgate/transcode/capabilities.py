"""ffmpeg installation and version-gated feature detection."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)

# DASH muxer streaming/segment options need ffmpeg 4.x.
DASH_STREAMING_MIN_MAJOR = 4
# ``-streaming`` and ``-hls_playlist`` on the DASH muxer landed in 4.1.
HLS_PLAYLIST_MIN_VERSION = (4, 1)

_VERSION_PATTERN = re.compile(r"ffmpeg version\s+n?(\d+)\.(\d+)", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class FfmpegVersion:
    major: int
    minor: int

    def at_least(self, major: int, minor: int = 0) -> bool:
        return (self.major, self.minor) >= (major, minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True, slots=True)
class FfmpegCapabilities:
    """What the installed ffmpeg binary can do.

    An unknown version (e.g. a git build reporting ``N-12345-g...``) is
    treated as older than every gate so gated flags are omitted.
    """

    binary: str
    installed: bool
    version: FfmpegVersion | None = None

    @property
    def supports_dash_streaming(self) -> bool:
        return self.version is not None and self.version.major >= DASH_STREAMING_MIN_MAJOR

    @property
    def supports_hls_playlist(self) -> bool:
        return self.version is not None and self.version.at_least(*HLS_PLAYLIST_MIN_VERSION)

    def describe(self) -> list[str]:
        if not self.installed:
            return [f"{self.binary}: not installed"]
        version = str(self.version) if self.version is not None else "unknown"
        return [
            f"{self.binary}: version {version}",
            f"dash streaming flags: {'enabled' if self.supports_dash_streaming else 'disabled'}",
            f"hls playlist: {'enabled' if self.supports_hls_playlist else 'disabled'}",
        ]


def parse_ffmpeg_version(output: str) -> FfmpegVersion | None:
    """Parse the first line of ``ffmpeg -version`` output."""
    match = _VERSION_PATTERN.search(output)
    if match is None:
        return None
    return FfmpegVersion(major=int(match.group(1)), minor=int(match.group(2)))


def detect_ffmpeg(binary: str = "ffmpeg") -> FfmpegCapabilities:
    """Run ``<binary> -version`` and report installation and version."""
    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, subprocess.SubprocessError, OSError):
        logger.warning("ffmpeg binary not usable: %s", binary, exc_info=True)
        return FfmpegCapabilities(binary=binary, installed=False)

    if result.returncode != 0:
        logger.warning("%s -version exited with code %s", binary, result.returncode)
        return FfmpegCapabilities(binary=binary, installed=False)

    version = parse_ffmpeg_version(result.stdout)
    if version is None:
        first_line = result.stdout.splitlines()[0] if result.stdout else ""
        logger.info("Could not parse ffmpeg version from %r; version-gated flags disabled", first_line)
    return FfmpegCapabilities(binary=binary, installed=True, version=version)


class FfmpegCapabilityCache:
    """Process-wide cache so ``-version`` runs once per binary."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._entries: dict[str, FfmpegCapabilities] = {}

    def get(self, binary: str) -> FfmpegCapabilities:
        with self._lock:
            cached = self._entries.get(binary)
        if cached is not None:
            return cached
        detected = detect_ffmpeg(binary)
        with self._lock:
            return self._entries.setdefault(binary, detected)

    def reset(self) -> None:
        """Forget detected binaries (for tests)."""
        with self._lock:
            self._entries.clear()


_GLOBAL_FFMPEG_CAPABILITIES = FfmpegCapabilityCache()


def get_ffmpeg_capabilities(binary: str = "ffmpeg") -> FfmpegCapabilities:
    return _GLOBAL_FFMPEG_CAPABILITIES.get(binary)
