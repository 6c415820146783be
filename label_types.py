from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from PIL import Image

from label_templates.base import Align


@dataclass(frozen=True)
class DataRecord:
    """Product identifiers to print; only ``fnsku`` is mandatory."""

    fnsku: str
    sku: str = ""
    asin: str = ""
    title: str = ""
    image: str = ""
    condition: str = ""


@dataclass(frozen=True)
class TextInstruction:
    """Text drawn with its baseline at ``y`` (measured from the top edge)."""

    text: str
    x: float
    y: float
    font_size: float
    align: Align = Align.LEFT
    bold: bool = False


@dataclass(frozen=True)
class ImageInstruction:
    """Raster drawn with its top-left corner at ``(x, y)``."""

    image: Image.Image
    x: float
    y: float
    width: float
    height: float


DrawInstruction = Union[TextInstruction, ImageInstruction]
Page = list[DrawInstruction]
