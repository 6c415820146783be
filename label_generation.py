"""Rendering helpers that turn label pages into PDF or PNG output."""

from __future__ import annotations

from io import BytesIO
from typing import Sequence

import fitz
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from label_templates.base import Align, Orientation, Template
from label_templates.utils import font_name, to_points
from label_types import ImageInstruction, Page, TextInstruction

DEFAULT_PNG_DPI = 300


def page_size(template: Template) -> tuple[float, float]:
    """Return the page size in points, swapped to honour the orientation."""

    width = to_points(template.width, template.units)
    height = to_points(template.height, template.units)
    if template.orientation == Orientation.LANDSCAPE and width < height:
        return height, width
    if template.orientation == Orientation.PORTRAIT and width > height:
        return height, width
    return width, height


def _draw_text(
    canvas_obj: canvas.Canvas,
    instruction: TextInstruction,
    template: Template,
    page_height: float,
) -> None:
    x = to_points(instruction.x, template.units)
    baseline = page_height - to_points(instruction.y, template.units)
    canvas_obj.setFont(font_name(instruction.bold), instruction.font_size)
    if instruction.align == Align.CENTER:
        canvas_obj.drawCentredString(x, baseline, instruction.text)
    elif instruction.align == Align.RIGHT:
        canvas_obj.drawRightString(x, baseline, instruction.text)
    else:
        canvas_obj.drawString(x, baseline, instruction.text)


def _draw_image(
    canvas_obj: canvas.Canvas,
    instruction: ImageInstruction,
    template: Template,
    page_height: float,
) -> None:
    width = to_points(instruction.width, template.units)
    height = to_points(instruction.height, template.units)
    canvas_obj.drawImage(
        ImageReader(instruction.image),
        to_points(instruction.x, template.units),
        page_height - to_points(instruction.y, template.units) - height,
        width=width,
        height=height,
        mask="auto",
    )


def render_pdf(
    pages: Sequence[Page],
    template: Template,
    output_path: str | None = None,
) -> bytes:
    """Render one PDF page per label page and return the document bytes."""

    if not pages:
        raise ValueError("Nothing to render: the page list is empty.")

    size = page_size(template)
    buffer = BytesIO()
    canvas_obj = canvas.Canvas(buffer, pagesize=size)
    canvas_obj.setTitle(f"Label - {template.display_name}")
    canvas_obj.setCreator("fnsku-labels")

    for page in pages:
        for instruction in page:
            if isinstance(instruction, ImageInstruction):
                _draw_image(canvas_obj, instruction, template, size[1])
            else:
                _draw_text(canvas_obj, instruction, template, size[1])
        canvas_obj.showPage()

    canvas_obj.save()
    pdf_bytes = buffer.getvalue()

    if output_path:
        with open(output_path, "wb") as handle:
            handle.write(pdf_bytes)
    return pdf_bytes


def render_png(pdf_bytes: bytes, dpi: int = DEFAULT_PNG_DPI) -> list[bytes]:
    """Rasterize every page of ``pdf_bytes`` to PNG."""

    images: list[bytes] = []
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        for page in doc:
            pix = page.get_pixmap(dpi=dpi)
            images.append(pix.tobytes("png"))
    return images


__all__ = ["page_size", "render_pdf", "render_png"]
