"""Versioned settings record shared by the settings store and migrations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Callable, Mapping

from errors import ValidationError
from label_templates.base import ConditionPosition, ConditionSettings, TEXT_ELEMENTS
from label_templates.builtin import DEFAULT_TEMPLATE_ID
from timestamps import Clock, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

SETTINGS_KEY = "fnsku_extension_settings"
SCHEMA_VERSION = 2


class BarcodeFormat(StrEnum):
    CODE128 = "CODE128"
    CODE39 = "CODE39"
    EAN13 = "EAN13"


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def coerce_barcode_format(value: Any) -> BarcodeFormat:
    if isinstance(value, str):
        return BarcodeFormat(value.strip().upper())
    raise ValueError(f"expected a barcode format name, got {value!r}")


def coerce_font_size_overrides(value: Any) -> dict[str, float | None]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("font size overrides must be a mapping")
    overrides: dict[str, float | None] = {}
    for name, size in value.items():
        if name not in TEXT_ELEMENTS:
            raise ValueError(f"no text field named {name!r}")
        if size is None:
            overrides[name] = None
            continue
        if isinstance(size, bool) or not isinstance(size, (int, float)) or size <= 0:
            raise ValueError(f"font size for {name} must be a positive number")
        overrides[name] = size
    return overrides


def coerce_condition_settings(value: Any) -> ConditionSettings | None:
    if value is None or isinstance(value, ConditionSettings):
        return value
    if not isinstance(value, Mapping):
        raise ValueError("condition settings must be a mapping")
    position = value.get("position")
    if position is not None and position not in {p.value for p in ConditionPosition}:
        raise ValueError(f"unknown condition position {position!r}")
    return ConditionSettings.from_dict(value)


def coerce_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


@dataclass(frozen=True)
class GlobalSettings:
    barcode_format: BarcodeFormat = BarcodeFormat.CODE128
    auto_extract: bool = True
    auto_open_tabs: bool = False
    debug_mode: bool = False
    font_size_overrides: dict[str, float | None] = field(default_factory=dict)
    condition_settings: ConditionSettings | None = None
    last_selected_tab: str = "downloads"

    def font_size_override(self, name: str) -> float | None:
        return self.font_size_overrides.get(name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GlobalSettings":
        """Build from the persisted shape, keeping defaults for bad values."""

        values: dict[str, Any] = {}
        for attribute, key in GLOBAL_SETTING_KEYS.items():
            if key not in data:
                continue
            try:
                values[attribute] = GLOBAL_SETTING_COERCERS[attribute](data[key])
            except (TypeError, ValueError) as exc:
                logger.warning("Ignoring stored %s: %s", key, exc)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "barcodeFormat": self.barcode_format.value,
            "autoExtract": self.auto_extract,
            "autoOpenTabs": self.auto_open_tabs,
            "debugMode": self.debug_mode,
            "fontSizeOverrides": dict(self.font_size_overrides),
            "conditionSettings": (
                self.condition_settings.to_dict()
                if self.condition_settings is not None
                else None
            ),
            "lastSelectedTab": self.last_selected_tab,
        }

    def merged(self, changes: Mapping[str, Any]) -> "GlobalSettings":
        return replace(self, **coerce_global_changes(changes))


GLOBAL_SETTING_KEYS: dict[str, str] = {
    "barcode_format": "barcodeFormat",
    "auto_extract": "autoExtract",
    "auto_open_tabs": "autoOpenTabs",
    "debug_mode": "debugMode",
    "font_size_overrides": "fontSizeOverrides",
    "condition_settings": "conditionSettings",
    "last_selected_tab": "lastSelectedTab",
}

GLOBAL_SETTING_COERCERS: dict[str, Callable[[Any], Any]] = {
    "barcode_format": coerce_barcode_format,
    "auto_extract": coerce_bool,
    "auto_open_tabs": coerce_bool,
    "debug_mode": coerce_bool,
    "font_size_overrides": coerce_font_size_overrides,
    "condition_settings": coerce_condition_settings,
    "last_selected_tab": coerce_text,
}


def coerce_global_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a partial update keyed by attribute name.

    Raises ``ValidationError`` listing every unknown key or bad value.
    """

    errors: list[str] = []
    coerced: dict[str, Any] = {}
    for key, value in changes.items():
        coerce = GLOBAL_SETTING_COERCERS.get(key)
        if coerce is None:
            errors.append(f"Unknown setting '{key}'")
            continue
        try:
            coerced[key] = coerce(value)
        except (TypeError, ValueError) as exc:
            errors.append(f"Invalid value for {key}: {exc}")
    if errors:
        raise ValidationError(errors)
    return coerced


@dataclass(frozen=True)
class Settings:
    selected_template_id: str = DEFAULT_TEMPLATE_ID
    global_settings: GlobalSettings = field(default_factory=GlobalSettings)
    last_updated: str = ""

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        defaults: "Settings | None" = None,
    ) -> "Settings":
        base = defaults or cls()
        selected = data.get("selectedTemplateId")
        global_data = data.get("globalSettings")
        return cls(
            selected_template_id=(
                selected if isinstance(selected, str) and selected
                else base.selected_template_id
            ),
            global_settings=(
                GlobalSettings.from_dict(
                    {**base.global_settings.to_dict(), **global_data}
                )
                if isinstance(global_data, Mapping)
                else base.global_settings
            ),
            last_updated=str(data.get("lastUpdated") or base.last_updated),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "selectedTemplateId": self.selected_template_id,
            "globalSettings": self.global_settings.to_dict(),
            "lastUpdated": self.last_updated,
        }


def default_settings(clock: Clock = utc_now) -> Settings:
    return Settings(last_updated=iso_timestamp(clock))


__all__ = [
    "BarcodeFormat",
    "GLOBAL_SETTING_KEYS",
    "GlobalSettings",
    "SCHEMA_VERSION",
    "SETTINGS_KEY",
    "Settings",
    "coerce_bool",
    "coerce_global_changes",
    "default_settings",
]
