"""CLI entrypoint for the ONVIF gateway."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from onvifgate.app import Application
from onvifgate.config import ConfigError, load_config
from onvifgate.errors import FfmpegNotInstalledError
from onvifgate.logging_setup import configure_logging
from onvifgate.settings import GatewaySettings
from onvifgate.transcode.capabilities import detect_ffmpeg


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


class OnvifGate:
    """ONVIF camera gateway CLI."""

    def run(self, config: str | None = None, log_level: str | None = None) -> None:
        """Run the gateway.

        Args:
            config: Path to YAML config file (default: ONVIFGATE_CONFIG_PATH)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        settings = GatewaySettings()
        setup_logging(log_level or settings.log_level)

        config_path = Path(config) if config else settings.config_path
        app = Application(config_path, ffmpeg_bin=settings.ffmpeg_bin)

        try:
            asyncio.run(app.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except FfmpegNotInstalledError as e:
            print(f"✗ {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass  # Handled by signal handlers

    def validate(self, config: str | None = None) -> None:
        """Validate config file without running.

        Args:
            config: Path to YAML config file
        """
        config_path = Path(config) if config else GatewaySettings().config_path

        try:
            cfg = load_config(config_path)
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        complete = [device for device in cfg.devices if device.is_complete]
        stubs = [device for device in cfg.devices if not device.is_complete]
        print(f"✓ Config valid: {config_path}")
        print(f"  Devices: {len(cfg.devices)} ({len(complete)} ready, {len(stubs)} awaiting credentials)")
        for device in stubs:
            print(f"    - {device.address or '<no address>'} {device.note}".rstrip())
        print(f"  Media root: {cfg.transcode.media_root}")
        print(f"  Stream on attach: {cfg.transcode.stream_on_attach}")
        print(f"  Discovery interval: {cfg.discovery.interval_s}s")

    def ffmpeg(self, binary: str | None = None) -> None:
        """Show the detected ffmpeg version and enabled feature gates.

        Args:
            binary: ffmpeg executable (default: ONVIFGATE_FFMPEG_BIN or ffmpeg)
        """
        resolved = binary or GatewaySettings().ffmpeg_bin or "ffmpeg"
        capabilities = detect_ffmpeg(resolved)
        for line in capabilities.describe():
            print(line)
        if not capabilities.installed:
            sys.exit(1)


def main() -> None:
    """Main CLI entrypoint."""
    # Strip --help/-h when it's the only arg so Fire shows its commands list
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(OnvifGate)


if __name__ == "__main__":
    main()
