"""Compose a data record, a template and global overrides into label pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from PIL import Image

from barcodes import BarcodeEncoder, Encoder
from errors import (
    ImageLoadError,
    InvalidQuantity,
    MissingRequiredField,
    TemplateNotFound,
)
from image_loader import ImageLoader, Loader, is_resolvable_url
from label_templates.base import (
    Align,
    BARCODE,
    CONDITION,
    ConditionPosition,
    ConditionSettings,
    ElementSpec,
    FNSKU,
    IMAGE,
    IMAGES_INCLUSION,
    SKU,
    TEXT_ELEMENTS,
    TITLE,
    Template,
)
from label_templates.builtin import DEFAULT_TEMPLATE_ID
from label_templates.utils import default_max_width, fit_font_size, truncate_text
from label_types import DataRecord, ImageInstruction, Page, TextInstruction
from settings import BarcodeFormat, GlobalSettings
from settings_store import SettingsStore
from template_store import TemplateStore

logger = logging.getLogger(__name__)

FALLBACK_TEMPLATE_ID = DEFAULT_TEMPLATE_ID

# Point sizes used when neither the settings nor the template set one.
DEFAULT_FONT_SIZES: dict[str, float] = {
    FNSKU: 8,
    SKU: 11,
    TITLE: 6,
    CONDITION: 5,
}
DEFAULT_TITLE_MAX_LENGTH = 50
CONDITION_EDGE_MARGIN = 2
DEFAULT_CONDITION = ConditionSettings()


@dataclass(frozen=True)
class EffectiveParameters:
    """Per-render parameters after layering settings over the template."""

    barcode_format: BarcodeFormat
    font_sizes: dict[str, float]
    condition: ConditionSettings


def resolve_parameters(
    template: Template,
    global_settings: GlobalSettings,
) -> EffectiveParameters:
    font_sizes: dict[str, float] = {}
    for name in TEXT_ELEMENTS:
        override = global_settings.font_size_override(name)
        element = template.element(name)
        if override is not None:
            font_sizes[name] = override
        elif element is not None and element.font_size is not None:
            font_sizes[name] = element.font_size
        else:
            font_sizes[name] = DEFAULT_FONT_SIZES[name]

    condition = (
        global_settings.condition_settings
        or template.condition_settings
        or DEFAULT_CONDITION
    )
    return EffectiveParameters(
        barcode_format=global_settings.barcode_format,
        font_sizes=font_sizes,
        condition=condition,
    )


def as_record(record: DataRecord | Mapping[str, Any]) -> DataRecord:
    if isinstance(record, DataRecord):
        return record
    return DataRecord(
        fnsku=str(record.get("fnsku") or ""),
        sku=str(record.get("sku") or ""),
        asin=str(record.get("asin") or ""),
        title=str(record.get("title") or ""),
        image=str(record.get("image") or ""),
        condition=str(record.get("condition") or ""),
    )


class LabelRenderer:
    """Stateless per call; reads fresh state from both stores every render."""

    def __init__(
        self,
        templates: TemplateStore,
        settings: SettingsStore,
        *,
        encoder: Encoder | None = None,
        image_loader: Loader | None = None,
    ) -> None:
        self._templates = templates
        self._settings = settings
        self._encoder = encoder or BarcodeEncoder()
        self._image_loader = image_loader or ImageLoader()

    async def generate_label(
        self,
        record: DataRecord | Mapping[str, Any],
        template: Template | str | None = None,
        quantity: int = 1,
        settings_override: Mapping[str, Any] | None = None,
    ) -> list[Page]:
        """Return ``quantity`` pages of draw instructions for ``record``.

        Either every page is returned or an error is raised; the barcode is
        encoded once and the same raster is shared by all pages.
        """

        record = as_record(record)
        settings = await self._settings.get_settings()
        resolved = await self.resolve_template(
            template, settings.selected_template_id
        )

        if not record.fnsku.strip():
            raise MissingRequiredField("fnsku")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantity(quantity)

        global_settings = settings.global_settings
        if settings_override:
            global_settings = global_settings.merged(settings_override)
        params = resolve_parameters(resolved, global_settings)

        barcode = None
        if resolved.includes(BARCODE) and resolved.element(BARCODE) is not None:
            barcode = self._encoder.encode(record.fnsku, params.barcode_format)

        product_image = await self._load_product_image(resolved, record)
        page = self._compose(resolved, record, params, barcode, product_image)

        logger.debug(
            "Rendered %d page(s) of %s for %s",
            quantity,
            resolved.id,
            record.fnsku,
        )
        return [list(page) for _ in range(quantity)]

    async def resolve_template(
        self,
        template: Template | str | None = None,
        selected_template_id: str | None = None,
    ) -> Template:
        """Return the explicit template, else the selected one, else the fallback."""

        if isinstance(template, Template):
            return template
        if selected_template_id is None:
            selected_template_id = await self._settings.get_selected_template_id()

        template_id = template or selected_template_id or FALLBACK_TEMPLATE_ID
        resolved = await self._templates.get_template(template_id)
        if resolved is None and template is None and template_id != FALLBACK_TEMPLATE_ID:
            logger.warning(
                "Selected template %s no longer exists; using %s",
                template_id,
                FALLBACK_TEMPLATE_ID,
            )
            resolved = await self._templates.get_template(FALLBACK_TEMPLATE_ID)
        if resolved is None:
            raise TemplateNotFound(template_id)
        return resolved

    async def _load_product_image(
        self,
        template: Template,
        record: DataRecord,
    ) -> Image.Image | None:
        if not (
            template.includes(IMAGES_INCLUSION)
            and template.element(IMAGE) is not None
            and record.image
        ):
            return None
        if not is_resolvable_url(record.image):
            logger.info("Skipping product image %r: not a URL", record.image)
            return None
        try:
            return await self._image_loader.load(record.image)
        except ImageLoadError as exc:
            logger.warning("Failed to load product image: %s", exc)
            return None

    def _compose(
        self,
        template: Template,
        record: DataRecord,
        params: EffectiveParameters,
        barcode: Image.Image | None,
        product_image: Image.Image | None,
    ) -> Page:
        page: Page = []
        condition = params.condition
        condition_text = record.condition or condition.text or DEFAULT_CONDITION.text
        show_condition = condition.enabled and template.includes(CONDITION)

        element = template.element(BARCODE)
        if barcode is not None and element is not None:
            page.append(_image(barcode, element))

        element = template.element(FNSKU)
        if element is not None and template.includes(FNSKU):
            page.append(
                self._text(template, record.fnsku, element, params.font_sizes[FNSKU])
            )

        element = template.element(SKU)
        if element is not None and template.includes(SKU) and record.sku:
            page.append(
                self._text(
                    template, f"SKU: {record.sku}", element, params.font_sizes[SKU]
                )
            )

        element = template.element(TITLE)
        if element is not None and template.includes(TITLE) and record.title:
            title = record.title
            if show_condition and condition.position == ConditionPosition.TITLE_PREFIX:
                title = f"{condition_text} - {title}"
            title = truncate_text(
                title, element.max_length or DEFAULT_TITLE_MAX_LENGTH
            )
            page.append(
                self._text(template, title, element, params.font_sizes[TITLE])
            )

        element = template.element(CONDITION)
        if (
            element is not None
            and show_condition
            and condition.position != ConditionPosition.TITLE_PREFIX
        ):
            align = element.align
            x = element.x
            if condition.position == ConditionPosition.BOTTOM_RIGHT:
                align = Align.RIGHT
                x = template.width - CONDITION_EDGE_MARGIN
            page.append(
                self._text(
                    template,
                    condition_text,
                    element,
                    params.font_sizes[CONDITION],
                    align=align,
                    x=x,
                )
            )

        element = template.element(IMAGE)
        if product_image is not None and element is not None:
            page.append(_image(product_image, element))

        return page

    def _text(
        self,
        template: Template,
        text: str,
        element: ElementSpec,
        font_size: float,
        *,
        align: Align | None = None,
        x: float | None = None,
    ) -> TextInstruction:
        bold = bool(element.bold)
        max_width = element.max_width or default_max_width(template.units)
        return TextInstruction(
            text=text,
            x=element.x if x is None else x,
            y=element.y,
            font_size=fit_font_size(
                text, font_size, max_width, bold, template.units
            ),
            align=(align or element.align or Align.LEFT),
            bold=bold,
        )


def _image(image: Image.Image, element: ElementSpec) -> ImageInstruction:
    return ImageInstruction(
        image=image,
        x=element.x,
        y=element.y,
        width=element.width or 0,
        height=element.height or 0,
    )


__all__ = [
    "DEFAULT_FONT_SIZES",
    "EffectiveParameters",
    "FALLBACK_TEMPLATE_ID",
    "LabelRenderer",
    "as_record",
    "resolve_parameters",
]
