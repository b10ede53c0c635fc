"""Process-level settings read from the environment and ``.env``."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_DOTENV = Path(__file__).resolve().parents[2] / ".env"


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ONVIFGATE_",
        env_file=(".env", _REPO_DOTENV),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"
    config_path: Path = Path("gateway.yaml")
    ffmpeg_bin: str | None = None  # overrides transcode.ffmpeg_bin from the config file

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return str(value).upper()
