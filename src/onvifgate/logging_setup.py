"""Console logging for the gateway.

Every line is tagged with the device it concerns. Modules pass the device
id as ``extra={"camera_name": device_id}``; records without one get the
process default set by :func:`set_camera_name`. Any other ``extra`` keys
are appended to the line as a JSON object.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(camera_name)s] %(name)s:%(lineno)d %(message)s"
_DEVICE_ATTR = "camera_name"
_NOISY_LOGGERS = ("zeep", "httpx", "wsdiscovery", "aiohttp.access", "urllib3")

# Attributes every LogRecord has; anything else on a record came from ``extra``.
_BUILTIN_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}

_default_camera_name = "-"


class _CameraNameFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, _DEVICE_ATTR, None):
            setattr(record, _DEVICE_ATTR, _default_camera_name)
        return True


class _JsonExtraFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _BUILTIN_ATTRS and key != _DEVICE_ATTR
        }
        if extras:
            line += " " + json.dumps(extras, default=str, sort_keys=True)
        return line


def set_camera_name(name: str | None) -> None:
    """Set the default `camera_name` for records logged without one."""
    global _default_camera_name
    _default_camera_name = name or "-"


def configure_logging(*, log_level: str = "INFO", camera_name: str | None = None) -> None:
    """Send all logging to stdout at ``log_level``.

    ``ONVIFGATE_LOG_FORMAT`` overrides the line format.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"camera_name": {"()": _CameraNameFilter}},
            "formatters": {
                "default": {
                    "()": _JsonExtraFormatter,
                    "format": os.getenv("ONVIFGATE_LOG_FORMAT", _DEFAULT_FORMAT),
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": str(log_level).upper(),
                    "formatter": "default",
                    "filters": ["camera_name"],
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"level": "DEBUG", "handlers": ["console"]},
        }
    )
    set_camera_name(camera_name)
    logging.captureWarnings(True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
