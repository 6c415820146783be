"""One-shot upgrade of legacy settings into the unified settings record."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Mapping

from errors import PersistenceError
from label_templates.builtin import legacy_built_in_id
from settings import (
    SCHEMA_VERSION,
    SETTINGS_KEY,
    Settings,
    coerce_barcode_format,
    coerce_bool,
)
from storage import KeyValueStorage
from timestamps import Clock, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

LEGACY_LABEL_SETTINGS_KEY = "fnskuLabelSettings"
LEGACY_EXTENSION_SETTINGS_KEY = "extensionSettings"
LEGACY_KEYS = [LEGACY_LABEL_SETTINGS_KEY, LEGACY_EXTENSION_SETTINGS_KEY]

SELECTED_TEMPLATE = "selected_template_id"


def _coerce_template_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"expected a template id, got {value!r}")
    return legacy_built_in_id(value.strip())


FieldTable = Mapping[str, tuple[str, Callable[[Any], Any]]]

# legacy field -> (Settings / GlobalSettings attribute, coercion)
_LABEL_SETTINGS_FIELDS: FieldTable = {
    "templateId": (SELECTED_TEMPLATE, _coerce_template_id),
    "barcodeFormat": ("barcode_format", coerce_barcode_format),
    "autoExtract": ("auto_extract", coerce_bool),
    "autoOpenTabs": ("auto_open_tabs", coerce_bool),
    "debugMode": ("debug_mode", coerce_bool),
}

_EXTENSION_LABEL_FIELDS: FieldTable = {
    "template": (SELECTED_TEMPLATE, _coerce_template_id),
}

# (storage key, nested path inside the stored value, field table)
_LEGACY_SHAPES: tuple[tuple[str, tuple[str, ...], FieldTable], ...] = (
    (LEGACY_LABEL_SETTINGS_KEY, (), _LABEL_SETTINGS_FIELDS),
    (LEGACY_EXTENSION_SETTINGS_KEY, ("labelSettings",), _EXTENSION_LABEL_FIELDS),
)


def _section(value: Any, path: tuple[str, ...]) -> Mapping[str, Any] | None:
    for step in path:
        value = value.get(step) if isinstance(value, Mapping) else None
    return value if isinstance(value, Mapping) else None


class MigrationAdapter:
    """Upgrades persisted settings written by earlier versions."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._clock = clock

    def upgrade(self, stored: Mapping[str, Any], defaults: Settings) -> Settings:
        """Read a unified settings object, rewriting schema version 1 ids."""

        settings = Settings.from_dict(stored, defaults)
        version = stored.get("schemaVersion", 1)
        if isinstance(version, int) and version < SCHEMA_VERSION:
            upgraded = legacy_built_in_id(settings.selected_template_id)
            if upgraded != settings.selected_template_id:
                logger.info(
                    "Upgraded selected template id %s -> %s",
                    settings.selected_template_id,
                    upgraded,
                )
                settings = replace(settings, selected_template_id=upgraded)
        return settings

    async def migrate(self, defaults: Settings) -> Settings:
        """Fold legacy keys into the unified record; never raises on I/O."""

        try:
            return await self._migrate_legacy(defaults)
        except PersistenceError as exc:
            logger.error("Failed to migrate legacy settings: %s", exc)
            return defaults

    async def _migrate_legacy(self, defaults: Settings) -> Settings:
        legacy = await self._storage.get(LEGACY_KEYS)

        selected = defaults.selected_template_id
        global_changes: dict[str, Any] = {}
        migrated = False

        for key, path, table in _LEGACY_SHAPES:
            section = _section(legacy.get(key), path)
            if section is None:
                continue
            for legacy_field, (attribute, coerce) in table.items():
                if section.get(legacy_field) is None:
                    continue
                try:
                    value = coerce(section[legacy_field])
                except (TypeError, ValueError) as exc:
                    logger.warning(
                        "Skipping legacy %s.%s: %s", key, legacy_field, exc
                    )
                    continue
                if attribute == SELECTED_TEMPLATE:
                    selected = value
                else:
                    global_changes[attribute] = value
                migrated = True

        if not migrated:
            return defaults

        settings = Settings(
            selected_template_id=selected,
            global_settings=replace(defaults.global_settings, **global_changes),
            last_updated=iso_timestamp(self._clock),
        )
        await self._storage.set({SETTINGS_KEY: settings.to_dict()})

        try:
            await self._storage.remove(LEGACY_KEYS)
        except PersistenceError as exc:
            logger.warning("Failed to clean up legacy settings keys: %s", exc)

        logger.info("Settings migrated from legacy format")
        return settings


__all__ = ["LEGACY_KEYS", "MigrationAdapter"]
