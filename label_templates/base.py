"""Data model for label templates and their per-field elements."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping

BARCODE = "barcode"
FNSKU = "fnsku"
SKU = "sku"
TITLE = "title"
IMAGE = "image"
CONDITION = "condition"

ELEMENT_NAMES = (BARCODE, FNSKU, SKU, TITLE, IMAGE, CONDITION)
BOX_ELEMENTS = frozenset({BARCODE, IMAGE})
TEXT_ELEMENTS = frozenset({FNSKU, SKU, TITLE, CONDITION})

# The image switch is plural while every other inclusion key is singular.
IMAGES_INCLUSION = "images"
INCLUSION_KEYS = (BARCODE, FNSKU, SKU, TITLE, CONDITION, IMAGES_INCLUSION)


class Units(StrEnum):
    MM = "mm"
    IN = "in"


class Orientation(StrEnum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class Align(StrEnum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ConditionPosition(StrEnum):
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    TITLE_PREFIX = "title-prefix"


def _format_number(value: float) -> str:
    return f"{value:g}"


@dataclass(frozen=True)
class ElementSpec:
    """Position and styling of one label field, in template units."""

    x: float
    y: float
    width: float | None = None
    height: float | None = None
    font_size: float | None = None
    align: Align | None = None
    bold: bool | None = None
    max_length: int | None = None
    max_width: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ElementSpec":
        align = data.get("align")
        return cls(
            x=data["x"],
            y=data["y"],
            width=data.get("width"),
            height=data.get("height"),
            font_size=data.get("fontSize"),
            align=Align(align) if align is not None else None,
            bold=data.get("bold"),
            max_length=data.get("maxLength"),
            max_width=data.get("maxWidth"),
        )

    def to_dict(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "fontSize": self.font_size,
            "align": self.align.value if self.align is not None else None,
            "bold": self.bold,
            "maxLength": self.max_length,
            "maxWidth": self.max_width,
        }
        return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True)
class ConditionSettings:
    """Condition badge (for example "NEW") shown on the label."""

    enabled: bool = True
    text: str = "NEW"
    position: ConditionPosition = ConditionPosition.BOTTOM_LEFT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConditionSettings":
        position = data.get("position") or ConditionPosition.BOTTOM_LEFT
        return cls(
            enabled=bool(data.get("enabled", True)),
            text=str(data.get("text") or "NEW"),
            position=ConditionPosition(position),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "text": self.text,
            "position": self.position.value,
        }


@dataclass(frozen=True)
class Template:
    """A named, dimensioned label layout."""

    id: str
    name: str
    width: float
    height: float
    elements: dict[str, ElementSpec]
    content_inclusion: dict[str, bool]
    base_name: str = ""
    user_created: bool = False
    units: Units = Units.MM
    orientation: Orientation = Orientation.LANDSCAPE
    condition_settings: ConditionSettings | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def display_name(self) -> str:
        base = self.base_name or self.name or "Template"
        return (
            f"{base} {_format_number(self.width)}×"
            f"{_format_number(self.height)}{self.units.value}"
        )

    def element(self, name: str) -> ElementSpec | None:
        return self.elements.get(name)

    def includes(self, key: str) -> bool:
        """Return whether ``key`` renders; only ``images`` is opt-in."""

        if key == IMAGES_INCLUSION:
            return bool(self.content_inclusion.get(key, False))
        return self.content_inclusion.get(key) is not False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Template":
        condition = data.get("conditionSettings")
        return cls(
            id=str(data.get("id") or ""),
            name=data["name"],
            base_name=data.get("baseName") or "",
            user_created=bool(data.get("userCreated", False)),
            width=data["width"],
            height=data["height"],
            units=Units(data.get("units") or Units.MM),
            orientation=Orientation(data["orientation"]),
            elements={
                name: ElementSpec.from_dict(spec)
                for name, spec in data["elements"].items()
            },
            content_inclusion={
                key: bool(value)
                for key, value in data["contentInclusion"].items()
            },
            condition_settings=(
                ConditionSettings.from_dict(condition)
                if isinstance(condition, Mapping)
                else None
            ),
            created_at=data.get("createdAt") or "",
            updated_at=data.get("updatedAt") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "baseName": self.base_name,
            "userCreated": self.user_created,
            "width": self.width,
            "height": self.height,
            "units": self.units.value,
            "orientation": self.orientation.value,
            "elements": {
                name: spec.to_dict() for name, spec in self.elements.items()
            },
            "contentInclusion": dict(self.content_inclusion),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.condition_settings is not None:
            data["conditionSettings"] = self.condition_settings.to_dict()
        return data


__all__ = [
    "Align",
    "BARCODE",
    "BOX_ELEMENTS",
    "CONDITION",
    "ConditionPosition",
    "ConditionSettings",
    "ELEMENT_NAMES",
    "ElementSpec",
    "FNSKU",
    "IMAGE",
    "IMAGES_INCLUSION",
    "INCLUSION_KEYS",
    "Orientation",
    "SKU",
    "TEXT_ELEMENTS",
    "TITLE",
    "Template",
    "Units",
]
