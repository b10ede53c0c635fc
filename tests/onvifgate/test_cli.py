"""Tests for CLI module."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from onvifgate.cli import OnvifGate, main, setup_logging
from onvifgate.config import ConfigError
from onvifgate.errors import FfmpegNotInstalledError
from onvifgate.transcode.capabilities import FfmpegCapabilities, FfmpegVersion


def _config_with_stub() -> dict[str, object]:
    return {
        "devices": [
            {
                "address": "http://10.0.0.5/onvif/device_service",
                "username": "admin",
                "password": "secret",
            },
            {
                "address": "http://10.0.0.6/onvif/device_service",
                "urn": "urn:uuid:porch",
                "note": "Porch",
            },
        ],
    }


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_configures_logging_with_default_level(self) -> None:
        """Configures logging with INFO level by default."""
        # Given/When: Calling setup_logging without arguments
        with patch("onvifgate.cli.configure_logging") as mock_configure:
            setup_logging()

        # Then: configure_logging is called with INFO
        mock_configure.assert_called_once_with(log_level="INFO")


class TestOnvifGateValidate:
    """Tests for validate command."""

    def test_validate_lists_devices_awaiting_credentials(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Prints device counts and stubs for a valid config."""
        # Given: A config with one ready device and one stub
        config_path = tmp_path / "gateway.yaml"
        config_path.write_text(yaml.dump(_config_with_stub()))

        # When: Validating
        OnvifGate().validate(str(config_path))

        # Then: Summary lists the stub
        out = capsys.readouterr().out
        assert "✓ Config valid" in out
        assert "Devices: 2 (1 ready, 1 awaiting credentials)" in out
        assert "http://10.0.0.6/onvif/device_service Porch" in out

    def test_validate_invalid_config_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Exits with error for invalid config."""
        # Given: A config with an unknown section
        config_path = tmp_path / "gateway.yaml"
        config_path.write_text(yaml.dump({"cameras": []}))

        # When/Then: Validating raises SystemExit
        with pytest.raises(SystemExit) as exc_info:
            OnvifGate().validate(str(config_path))

        # Then: Exit code is 1 and error is printed
        assert exc_info.value.code == 1
        assert "✗ Config invalid" in capsys.readouterr().err

    def test_validate_uses_settings_path(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Without an argument the path comes from ONVIFGATE_CONFIG_PATH."""
        # Given: The config path set in the environment
        config_path = tmp_path / "from-env.yaml"
        config_path.write_text("")
        monkeypatch.setenv("ONVIFGATE_CONFIG_PATH", str(config_path))

        # When: Validating without arguments
        OnvifGate().validate()

        # Then: The env path was used
        assert str(config_path) in capsys.readouterr().out


class TestOnvifGateRun:
    """Tests for run command."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ConfigError("Test error"), "✗ Config invalid: Test error"),
            (FfmpegNotInstalledError("ffmpeg"), "✗ ffmpeg is not installed"),
        ],
    )
    def test_run_startup_errors_exit(
        self,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
        error: Exception,
        expected: str,
    ) -> None:
        """Exits with status 1 when startup fails."""
        # Given: An Application that fails to start
        mock_app = MagicMock()
        mock_app.run = AsyncMock(side_effect=error)

        with (
            patch("onvifgate.cli.setup_logging"),
            patch("onvifgate.cli.Application", return_value=mock_app) as app_class,
        ):
            # When/Then: Running raises SystemExit
            with pytest.raises(SystemExit) as exc_info:
                OnvifGate().run(str(tmp_path / "gateway.yaml"))

        # Then: Exit code is 1 and the reason is printed
        assert exc_info.value.code == 1
        assert expected in capsys.readouterr().err
        assert app_class.call_args.args[0] == tmp_path / "gateway.yaml"

    def test_run_keyboard_interrupt_handled(self, tmp_path: Path) -> None:
        """Handles KeyboardInterrupt gracefully."""
        # Given: An Application interrupted by the user
        mock_app = MagicMock()
        mock_app.run = AsyncMock(side_effect=KeyboardInterrupt())

        with (
            patch("onvifgate.cli.setup_logging") as mock_logging,
            patch("onvifgate.cli.Application", return_value=mock_app),
        ):
            # When: Running
            OnvifGate().run(str(tmp_path / "gateway.yaml"), log_level="debug")

        # Then: No exception escapes and the log level was passed through
        mock_logging.assert_called_once_with("debug")


class TestOnvifGateFfmpeg:
    """Tests for ffmpeg command."""

    def test_ffmpeg_prints_feature_gates(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Prints version and gates for an installed binary."""
        # Given: ffmpeg 4.1 detected
        caps = FfmpegCapabilities(binary="ffmpeg", installed=True, version=FfmpegVersion(4, 1))
        with patch("onvifgate.cli.detect_ffmpeg", return_value=caps) as detect:
            # When: Running the ffmpeg command
            OnvifGate().ffmpeg("/opt/ffmpeg")

        # Then: Gates are printed
        out = capsys.readouterr().out
        assert "hls playlist: enabled" in out
        detect.assert_called_once_with("/opt/ffmpeg")

    def test_ffmpeg_missing_exits(self) -> None:
        """Exits non-zero when ffmpeg is missing."""
        # Given: No ffmpeg
        caps = FfmpegCapabilities(binary="ffmpeg", installed=False, version=None)
        with patch("onvifgate.cli.detect_ffmpeg", return_value=caps):
            # When/Then: The command exits
            with pytest.raises(SystemExit) as exc_info:
                OnvifGate().ffmpeg("ffmpeg")
        assert exc_info.value.code == 1


def test_main_strips_lone_help_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    """A lone --help should show the command list."""
    # Given: argv with only --help
    monkeypatch.setattr(sys, "argv", ["onvifgate", "--help"])

    # When: Running main with Fire mocked
    with patch("onvifgate.cli.fire.Fire") as mock_fire:
        main()

    # Then: The flag was stripped before Fire saw it
    assert sys.argv == ["onvifgate"]
    mock_fire.assert_called_once_with(OnvifGate)
