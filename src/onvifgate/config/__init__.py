"""Configuration loading, validation and persistence."""

from onvifgate.config.loader import (
    ConfigError,
    ConfigErrorCode,
    load_config,
    load_config_from_dict,
)
from onvifgate.config.store import YamlCredentialStore

__all__ = [
    "ConfigError",
    "ConfigErrorCode",
    "YamlCredentialStore",
    "load_config",
    "load_config_from_dict",
]
