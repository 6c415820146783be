"""Barcode rasterization for label rendering."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from barcode import get_barcode_class
from barcode.errors import BarcodeError
from barcode.writer import ImageWriter
from PIL import Image

from errors import EncodingError
from settings import BarcodeFormat

logger = logging.getLogger(__name__)

_BARCODE_NAMES = {
    BarcodeFormat.CODE128: "code128",
    BarcodeFormat.CODE39: "code39",
    BarcodeFormat.EAN13: "ean13",
}

_CLASS_OPTIONS: dict[BarcodeFormat, dict[str, Any]] = {
    BarcodeFormat.CODE39: {"add_checksum": False},
}

# Bars only: the label prints the FNSKU as its own text element.
WRITER_OPTIONS: dict[str, Any] = {
    "write_text": False,
    "quiet_zone": 0,
    "module_width": 0.4,
    "module_height": 20.0,
    "dpi": 300,
    "background": "white",
    "foreground": "black",
}


class Encoder(Protocol):
    def encode(self, data: str, barcode_format: BarcodeFormat) -> Image.Image:
        ...


class BarcodeEncoder:
    """Encode strings with python-barcode's Pillow writer."""

    def __init__(self, writer_options: dict[str, Any] | None = None) -> None:
        self.writer_options = {**WRITER_OPTIONS, **(writer_options or {})}

    def encode(self, data: str, barcode_format: BarcodeFormat) -> Image.Image:
        barcode_format = BarcodeFormat(barcode_format)
        if not data:
            raise EncodingError("Cannot encode an empty barcode value")

        barcode_cls = get_barcode_class(_BARCODE_NAMES[barcode_format])
        try:
            code = barcode_cls(
                data,
                writer=ImageWriter(),
                **_CLASS_OPTIONS.get(barcode_format, {}),
            )
            image = code.render(writer_options=dict(self.writer_options))
        except (BarcodeError, ValueError, KeyError) as exc:
            raise EncodingError(
                f"Failed to generate {barcode_format.value} barcode for "
                f"{data!r}: {exc}"
            ) from exc

        logger.debug(
            "Encoded %s barcode %r (%dx%d px)",
            barcode_format.value,
            data,
            image.width,
            image.height,
        )
        return image


__all__ = ["BarcodeEncoder", "Encoder"]
