"""Property and action descriptions exposed to the host runtime."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

PropertyType = Literal["boolean", "integer", "number", "string", "null"]


class Link(BaseModel):
    """Media link attached to a property (stream manifest, snapshot image)."""

    model_config = {"populate_by_name": True}

    rel: str = "alternate"
    href: str
    media_type: str = Field(serialization_alias="mediaType")


class PropertyDescription(BaseModel):
    """Host-facing schema of one device property."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    name: str
    title: str
    type: PropertyType
    read_only: bool = Field(default=True, serialization_alias="readOnly")
    at_type: str | None = Field(default=None, serialization_alias="@type")
    enum: list[str] | None = None
    unit: str | None = None
    links: list[Link] = Field(default_factory=list)


class ActionDescription(BaseModel):
    """Host-facing schema of one device action."""

    model_config = {"extra": "forbid"}

    name: str
    title: str
    input: dict[str, Any] | None = None


class CameraProperty:
    """Cached value of one property plus its description."""

    def __init__(self, description: PropertyDescription, value: Any = None) -> None:
        self.description = description
        self.value = value

    @property
    def name(self) -> str:
        return self.description.name

    @property
    def writable(self) -> bool:
        return not self.description.read_only

    def set_cached_value(self, value: Any) -> bool:
        """Store value; return True if it changed."""
        if value == self.value:
            return False
        self.value = value
        return True

    def as_dict(self) -> dict[str, Any]:
        payload = self.description.model_dump(by_alias=True, exclude_none=True)
        payload["value"] = self.value
        return payload


def read_only(name: str, title: str, type_: PropertyType, *, unit: str | None = None) -> PropertyDescription:
    return PropertyDescription(name=name, title=title, type=type_, unit=unit)


MOVE_ACTION = ActionDescription(
    name="move",
    title="Move",
    input={
        "type": "object",
        "required": ["speedX", "speedY", "speedZ"],
        "properties": {
            "speedX": {"type": "number", "minimum": -1.0, "maximum": 1.0},
            "speedY": {"type": "number", "minimum": -1.0, "maximum": 1.0},
            "speedZ": {"type": "number", "minimum": -1.0, "maximum": 1.0},
            "timeout": {"type": "number", "minimum": 0, "unit": "seconds"},
        },
    },
)
STOP_ACTION = ActionDescription(name="stop", title="Stop")
HOME_ACTION = ActionDescription(name="home", title="Home")
PTZ_ACTIONS = (MOVE_ACTION, STOP_ACTION, HOME_ACTION)
