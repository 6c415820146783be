"""Shared text helpers for label composition."""

from __future__ import annotations

from reportlab.lib.units import inch, mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from .base import Units

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

ELLIPSIS = "..."

POINTS_PER_UNIT = {
    Units.MM: mm,
    Units.IN: inch,
}

# Auto-fit limit for text elements that do not declare ``maxWidth``.
DEFAULT_MAX_WIDTH_MM = 45.0


def font_name(bold: bool) -> str:
    return FONT_BOLD if bold else FONT_REGULAR


def to_points(value: float, units: Units) -> float:
    return value * POINTS_PER_UNIT[units]


def from_points(value: float, units: Units) -> float:
    return value / POINTS_PER_UNIT[units]


def default_max_width(units: Units) -> float:
    """Return the default auto-fit width expressed in ``units``."""

    return from_points(DEFAULT_MAX_WIDTH_MM * mm, units)


def text_width(text: str, font_size: float, bold: bool, units: Units) -> float:
    """Width of ``text`` at ``font_size`` points, in template ``units``."""

    return from_points(stringWidth(text, font_name(bold), font_size), units)


def truncate_text(text: str, max_length: int) -> str:
    """Hard-cut ``text`` to ``max_length`` characters ending in an ellipsis."""

    if not text or len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def fit_font_size(
    text: str,
    font_size: float,
    max_width: float,
    bold: bool,
    units: Units,
) -> float:
    """Scale ``font_size`` down proportionally until ``text`` fits ``max_width``.

    Text is never wrapped; when it already fits the size is returned as is.
    """

    if not text or max_width <= 0:
        return font_size
    measured = text_width(text, font_size, bold, units)
    if measured <= max_width:
        return font_size
    return font_size * max_width / measured


__all__ = [
    "DEFAULT_MAX_WIDTH_MM",
    "ELLIPSIS",
    "FONT_BOLD",
    "FONT_REGULAR",
    "default_max_width",
    "fit_font_size",
    "font_name",
    "from_points",
    "text_width",
    "to_points",
    "truncate_text",
]
