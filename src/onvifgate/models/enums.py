"""Centralized enums for type safety and IDE support."""

from enum import StrEnum


class TranscodeState(StrEnum):
    """Observed lifecycle state of a device's transcode subprocess."""

    IDLE = "idle"
    RUNNING = "running"
    RESTARTING = "restarting"


class DesiredState(StrEnum):
    """Whether a transcode subprocess should be running."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class QualityTier(StrEnum):
    """Output quality tier for transcoded streams."""

    STANDARD = "standard"
    HIGH = "high"

    @classmethod
    def from_flag(cls, high_quality: bool) -> "QualityTier":
        return cls.HIGH if high_quality else cls.STANDARD


class ActionStatus(StrEnum):
    """Completion status reported to the host for an action request."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"
