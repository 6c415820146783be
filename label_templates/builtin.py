"""Compiled-in label templates.

These are rebuilt on every start and never written to storage, so a failed
write or a bad migration cannot leave the store without a renderable layout.
"""

from __future__ import annotations

from .base import (
    Align,
    ElementSpec,
    Orientation,
    Template,
    Units,
)

BUILT_IN_PREFIX = "built_in:"
BUILT_IN_CREATED_AT = "2025-01-01T00:00:00.000Z"


def built_in_id(slug: str) -> str:
    return f"{BUILT_IN_PREFIX}{slug}"


DEFAULT_TEMPLATE_ID = built_in_id("thermal_57x32")


def _built_in(slug: str, name: str, **kwargs) -> Template:
    return Template(
        id=built_in_id(slug),
        name=name,
        base_name=name,
        user_created=False,
        created_at=BUILT_IN_CREATED_AT,
        updated_at=BUILT_IN_CREATED_AT,
        **kwargs,
    )


_BUILT_INS = (
    _built_in(
        "thermal_57x32",
        "Thermal",
        width=57,
        height=32,
        units=Units.MM,
        orientation=Orientation.LANDSCAPE,
        elements={
            "barcode": ElementSpec(x=4, y=2, width=49, height=12),
            "fnsku": ElementSpec(
                x=28.5, y=17, font_size=8, align=Align.CENTER, bold=False
            ),
            "sku": ElementSpec(
                x=28.5, y=22, font_size=11, align=Align.CENTER, bold=True
            ),
            "title": ElementSpec(
                x=28.5, y=26, font_size=6, align=Align.CENTER, max_length=50
            ),
        },
        content_inclusion={
            "barcode": True,
            "fnsku": True,
            "sku": True,
            "title": True,
            "images": False,
        },
    ),
    _built_in(
        "thermal_57x32_minimal",
        "Thermal Minimal",
        width=57,
        height=32,
        units=Units.MM,
        orientation=Orientation.LANDSCAPE,
        elements={
            "barcode": ElementSpec(x=4, y=4, width=49, height=16),
            "fnsku": ElementSpec(
                x=28.5, y=24, font_size=10, align=Align.CENTER, bold=True
            ),
        },
        content_inclusion={
            "barcode": True,
            "fnsku": True,
            "sku": False,
            "title": False,
            "images": False,
        },
    ),
    _built_in(
        "shipping_4x6",
        "Shipping",
        width=4,
        height=6,
        units=Units.IN,
        orientation=Orientation.PORTRAIT,
        elements={
            "barcode": ElementSpec(x=0.4, y=0.8, width=3.2, height=0.8),
            "fnsku": ElementSpec(
                x=2, y=2, font_size=12, align=Align.CENTER, bold=False,
                max_width=3.6,
            ),
            "sku": ElementSpec(
                x=2, y=2.75, font_size=16, align=Align.CENTER, bold=True,
                max_width=3.6,
            ),
            "title": ElementSpec(
                x=2, y=3.55, font_size=10, align=Align.CENTER, max_length=80,
                max_width=3.6,
            ),
            "image": ElementSpec(x=0.4, y=3.95, width=1.2, height=1.2),
        },
        content_inclusion={
            "barcode": True,
            "fnsku": True,
            "sku": True,
            "title": True,
            "images": True,
        },
    ),
)

BUILT_IN_TEMPLATES: dict[str, Template] = {
    template.id: template for template in _BUILT_INS
}


def legacy_built_in_id(template_id: str) -> str:
    """Map a pre-namespace id such as ``thermal_57x32`` to its current form."""

    candidate = built_in_id(template_id)
    if candidate in BUILT_IN_TEMPLATES:
        return candidate
    return template_id


__all__ = [
    "BUILT_IN_PREFIX",
    "BUILT_IN_TEMPLATES",
    "DEFAULT_TEMPLATE_ID",
    "built_in_id",
    "legacy_built_in_id",
]
