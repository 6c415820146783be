"""Exception hierarchy shared by the template, settings and rendering layers."""

from __future__ import annotations

from typing import Sequence


class LabelError(Exception):
    """Base class for every error raised by the label core."""


class ValidationError(LabelError):
    """Template or settings data failed validation."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(
            "Validation failed: " + ", ".join(self.errors)
        )


class NotFoundOrImmutable(LabelError):
    """Mutation attempted on a missing or built-in template."""

    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(
            f"Template '{template_id}' not found or cannot be modified"
        )


class TemplateNotFound(LabelError):
    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class MissingRequiredField(LabelError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"{field.upper()} is required for label generation")


class InvalidQuantity(LabelError):
    def __init__(self, quantity: object) -> None:
        self.quantity = quantity
        super().__init__(
            f"Quantity must be a positive integer, got {quantity!r}"
        )


class EncodingError(LabelError):
    """Barcode encoding failed; fatal for the render in progress."""


class PersistenceError(LabelError):
    """Storage backend I/O failed."""


class ImageLoadError(LabelError):
    """Product image could not be fetched or decoded."""


__all__ = [
    "EncodingError",
    "ImageLoadError",
    "InvalidQuantity",
    "LabelError",
    "MissingRequiredField",
    "NotFoundOrImmutable",
    "PersistenceError",
    "TemplateNotFound",
    "ValidationError",
]
