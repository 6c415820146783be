"""Publish/subscribe channel used by the template and settings stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class StoreEvent(StrEnum):
    TEMPLATE_CREATED = "templateCreated"
    TEMPLATE_UPDATED = "templateUpdated"
    TEMPLATE_DELETED = "templateDeleted"
    TEMPLATES_CLEARED = "templatesCleared"
    SETTINGS_CHANGED = "settingsChanged"
    GLOBAL_SETTINGS_CHANGED = "globalSettingsChanged"
    SETTING_CHANGED = "settingChanged"
    SETTINGS_SAVING = "settingsSaving"
    SETTINGS_SAVED = "settingsSaved"
    SETTINGS_SAVE_ERROR = "settingsSaveError"
    SETTINGS_RESET = "settingsReset"
    SETTINGS_IMPORTED = "settingsImported"
    TEMPLATE_SELECTED = "templateSelected"
    INITIALIZED = "initialized"


@dataclass(frozen=True)
class SettingChange:
    """Payload of ``settingChanged``."""

    key: str
    value: Any


class EventEmitter:
    """Synchronous fan-out of store events to registered listeners.

    Listener failures are logged and never reach the emitting store, so a
    broken subscriber cannot abort a save or a template mutation.
    """

    def __init__(self) -> None:
        self._listeners: dict[StoreEvent, list[Listener]] = {}

    def on(self, event: StoreEvent | str, callback: Listener) -> None:
        self._listeners.setdefault(StoreEvent(event), []).append(callback)

    def off(self, event: StoreEvent | str, callback: Listener) -> None:
        listeners = self._listeners.get(StoreEvent(event))
        if listeners and callback in listeners:
            listeners.remove(callback)

    def emit(self, event: StoreEvent, payload: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.warning(
                    "Listener for %s failed", event.value, exc_info=True
                )

    def listener_count(self, event: StoreEvent | str) -> int:
        return len(self._listeners.get(StoreEvent(event), []))

    def clear(self) -> None:
        self._listeners.clear()


__all__ = ["EventEmitter", "Listener", "SettingChange", "StoreEvent"]
