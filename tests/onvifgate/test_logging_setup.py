"""Tests for logging setup module."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest

from onvifgate.logging_setup import configure_logging, set_camera_name


@pytest.fixture(autouse=True)
def reset_logging_state() -> Iterator[None]:
    """Reset the default camera name after each test."""
    import onvifgate.logging_setup as module

    original_camera = module._default_camera_name

    yield

    module._default_camera_name = original_camera


@pytest.fixture(autouse=True)
def reset_logging_root() -> Iterator[None]:
    """Restore root logger handlers and levels after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    original_zeep_level = logging.getLogger("zeep").level
    original_wsdiscovery_level = logging.getLogger("wsdiscovery").level

    yield

    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(original_level)
    logging.captureWarnings(False)
    logging.getLogger("zeep").setLevel(original_zeep_level)
    logging.getLogger("wsdiscovery").setLevel(original_wsdiscovery_level)


def test_default_camera_name_is_injected(capsys: pytest.CaptureFixture[str]) -> None:
    """Records without a device id should carry the process default."""
    # Given: Logging configured with a default camera name
    configure_logging(log_level="INFO", camera_name="gateway")

    # When: Logging without extra fields
    logging.getLogger("test").info("hello")

    # Then: The default name appears in brackets
    out = capsys.readouterr().out
    assert "[gateway] test:" in out
    assert "hello" in out


def test_explicit_camera_name_wins(capsys: pytest.CaptureFixture[str]) -> None:
    """A per-record camera_name should override the default."""
    # Given: Logging configured
    configure_logging(log_level="INFO")
    set_camera_name(None)

    # When: Logging with a device id
    logging.getLogger("test").info("started", extra={"camera_name": "onvif-cam-1"})
    logging.getLogger("test").info("idle")

    # Then: Each line carries the right name
    lines = capsys.readouterr().out.strip().splitlines()
    assert "[onvif-cam-1]" in lines[0]
    assert "[-]" in lines[1]


def test_extra_fields_are_appended_as_json(capsys: pytest.CaptureFixture[str]) -> None:
    """Non-standard record attributes should be rendered as sorted JSON."""
    # Given: Logging configured
    configure_logging(log_level="INFO")

    # When: Logging with extra context
    logging.getLogger("test").info(
        "spawned", extra={"camera_name": "onvif-cam-1", "pid": 4000, "plan": "main:q=standard"}
    )

    # Then: The extras (without camera_name) follow the message
    line = capsys.readouterr().out.strip()
    payload = json.loads(line[line.index("{") :])
    assert payload == {"pid": 4000, "plan": "main:q=standard"}


def test_log_level_filters_console(capsys: pytest.CaptureFixture[str]) -> None:
    """The console handler should honour the configured level."""
    # Given: WARNING level
    configure_logging(log_level="warning")

    # When: Logging below and at the threshold
    logging.getLogger("test").info("quiet")
    logging.getLogger("test").warning("loud")

    # Then: Only the warning is printed
    out = capsys.readouterr().out
    assert "quiet" not in out
    assert "loud" in out


def test_noisy_library_loggers_are_raised_to_warning() -> None:
    """SOAP and discovery libraries should not flood the console."""
    # Given/When: Logging configured at DEBUG
    configure_logging(log_level="DEBUG")

    # Then: Library loggers are capped at WARNING
    assert logging.getLogger("zeep").level == logging.WARNING
    assert logging.getLogger("wsdiscovery").level == logging.WARNING
