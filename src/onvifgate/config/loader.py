"""Reading the gateway YAML file into a validated Config."""

from __future__ import annotations

import logging
import os
import stat
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from onvifgate.models.config import Config

logger = logging.getLogger(__name__)

# Group/other permission bits; the file holds camera passwords.
_SHARED_MODE_BITS = 0o077


class ConfigErrorCode(str, Enum):
    """Stable config error codes."""

    FILE_NOT_FOUND = "CONFIG_FILE_NOT_FOUND"
    YAML_INVALID = "CONFIG_YAML_INVALID"
    ROOT_NOT_MAPPING = "CONFIG_ROOT_NOT_MAPPING"
    VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    UNKNOWN = "CONFIG_UNKNOWN"


class ConfigError(Exception):
    """The gateway config could not be read or is invalid."""

    def __init__(
        self,
        message: str,
        *,
        code: ConfigErrorCode = ConfigErrorCode.UNKNOWN,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.path = path
        self.__cause__ = cause


def load_config(path: Path) -> Config:
    """Load the device list and gateway settings from ``path``.

    An empty file is a config with no devices, so a freshly created file
    loads before the operator has added anything.

    Raises:
        ConfigError: The file is missing, is not a YAML mapping, or fails
            model validation. ``code`` tells the cases apart.
    """
    if not path.exists():
        raise ConfigError(
            f"Config file not found: {path}",
            code=ConfigErrorCode.FILE_NOT_FOUND,
            path=path,
        )
    _check_file_mode(path)
    return _validate(_read_mapping(path), path)


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Validate an in-memory config mapping."""
    return _validate(data, None)


def format_validation_error(e: ValidationError, path: Path | None = None) -> str:
    """Render a pydantic error as one ``field -> path: message`` line per problem."""
    header = "Config validation failed"
    if path is not None:
        header += f" ({path})"
    lines = [header + ":"]
    for err in e.errors():
        location = " -> ".join(str(part) for part in err["loc"])
        lines.append(f"  {location}: {err['msg']}")
    return "\n".join(lines)


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}: {e}",
            code=ConfigErrorCode.YAML_INVALID,
            path=path,
            cause=e,
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config must be a YAML mapping, got {type(raw).__name__}",
            code=ConfigErrorCode.ROOT_NOT_MAPPING,
            path=path,
        )
    return raw


def _validate(raw: dict[str, Any], path: Path | None) -> Config:
    try:
        config = Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(
            format_validation_error(e, path),
            code=ConfigErrorCode.VALIDATION_FAILED,
            path=path,
            cause=e,
        ) from e
    _warn_about_devices(config)
    return config


def _warn_about_devices(config: Config) -> None:
    """Log descriptors that load fine but will not behave as the operator expects."""
    addresses = Counter(device.address for device in config.devices if device.address)
    for address, count in addresses.items():
        if count > 1:
            logger.warning(
                "Device address listed %d times; only the first entry is used: %s",
                count,
                address,
            )

    for device in config.devices:
        if device.username and not device.password:
            logger.warning(
                "Device has a username but no password and will not be connected: %s",
                device.address or device.urn,
            )


def _check_file_mode(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        return
    if mode & _SHARED_MODE_BITS:
        logger.warning(
            "Config file permissions are too permissive for secret-bearing config: path=%s mode=%04o expected=0600",
            path,
            mode,
        )
