"""Label template model, built-in layouts and validation."""

from __future__ import annotations

import copy

from .base import Template
from .builtin import BUILT_IN_TEMPLATES, DEFAULT_TEMPLATE_ID
from .validation import ValidationResult, validate_template


def get_built_in_template(template_id: str) -> Template | None:
    """Return a copy of the built-in template ``template_id``, if any."""

    template = BUILT_IN_TEMPLATES.get(template_id)
    if template is None:
        return None
    return copy.deepcopy(template)


__all__ = [
    "DEFAULT_TEMPLATE_ID",
    "Template",
    "ValidationResult",
    "get_built_in_template",
    "validate_template",
]
