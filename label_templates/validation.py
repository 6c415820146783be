"""Structural validation of template data before it reaches storage."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping

from .base import (
    Align,
    BARCODE,
    BOX_ELEMENTS,
    ConditionPosition,
    FNSKU,
    Orientation,
    TEXT_ELEMENTS,
    Units,
)

LARGE_DIMENSION = 300
LONG_NAME = 50


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_choice(value: Any, choices: type[StrEnum]) -> bool:
    return isinstance(value, str) and value in {c.value for c in choices}


def _validate_element(name: str, element: Any, errors: list[str]) -> None:
    if not isinstance(element, Mapping):
        errors.append(f"Element {name} must be an object")
        return

    for axis in ("x", "y"):
        value = element.get(axis)
        if not _is_number(value) or value < 0:
            errors.append(
                f"Element {name} {axis} position must be a non-negative number"
            )

    if name in BOX_ELEMENTS:
        for dimension in ("width", "height"):
            value = element.get(dimension)
            if not _is_number(value) or value <= 0:
                errors.append(
                    f"Element {name} {dimension} must be a positive number"
                )

    if name in TEXT_ELEMENTS:
        font_size = element.get("fontSize")
        if not _is_number(font_size) or font_size <= 0:
            errors.append(f"Element {name} fontSize must be a positive number")
        max_length = element.get("maxLength")
        if max_length is not None and (
            not isinstance(max_length, int)
            or isinstance(max_length, bool)
            or max_length <= 3
        ):
            errors.append(
                f"Element {name} maxLength must be an integer greater than 3"
            )

    align = element.get("align")
    if align is not None and not _is_choice(align, Align):
        errors.append(f"Element {name} align must be one of left, center, right")

    max_width = element.get("maxWidth")
    if max_width is not None and (not _is_number(max_width) or max_width <= 0):
        errors.append(f"Element {name} maxWidth must be a positive number")


def validate_template(data: Mapping[str, Any]) -> ValidationResult:
    """Check ``data`` (persisted camelCase shape) against the template rules."""

    result = ValidationResult()
    errors = result.errors

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors.append("Template name is required")

    width = data.get("width")
    if not _is_number(width) or width <= 0:
        errors.append("Template width must be a positive number")

    height = data.get("height")
    if not _is_number(height) or height <= 0:
        errors.append("Template height must be a positive number")

    units = data.get("units")
    if units is not None and not _is_choice(units, Units):
        errors.append('Template units must be "mm" or "in"')

    if not _is_choice(data.get("orientation"), Orientation):
        errors.append('Template orientation must be "portrait" or "landscape"')

    elements = data.get("elements")
    if not isinstance(elements, Mapping) or not elements:
        errors.append("Template elements are required")
    else:
        if BARCODE not in elements and FNSKU not in elements:
            errors.append(
                "Template must include at least barcode or FNSKU element"
            )
        for element_name, element in elements.items():
            _validate_element(element_name, element, errors)

    if not isinstance(data.get("contentInclusion"), Mapping):
        errors.append("Template contentInclusion is required")

    condition = data.get("conditionSettings")
    if condition is not None:
        if not isinstance(condition, Mapping):
            errors.append("Template conditionSettings must be an object")
        else:
            position = condition.get("position")
            if position is not None and not _is_choice(position, ConditionPosition):
                errors.append(
                    "Condition position must be one of "
                    + ", ".join(p.value for p in ConditionPosition)
                )

    if (_is_number(width) and width > LARGE_DIMENSION) or (
        _is_number(height) and height > LARGE_DIMENSION
    ):
        result.warnings.append(
            "Large template dimensions may cause printing issues"
        )
    if isinstance(name, str) and len(name) > LONG_NAME:
        result.warnings.append("Template name is very long")

    return result


__all__ = ["ValidationResult", "validate_template"]
