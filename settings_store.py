"""Settings singleton with debounced persistence and change events."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import replace
from enum import StrEnum
from typing import Any, Awaitable, Callable, Mapping

from errors import PersistenceError, ValidationError
from events import EventEmitter, SettingChange, StoreEvent
from migration import MigrationAdapter
from settings import (
    GLOBAL_SETTING_KEYS,
    SETTINGS_KEY,
    GlobalSettings,
    Settings,
    coerce_global_changes,
    default_settings,
)
from storage import KeyValueStorage
from timestamps import Clock, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 0.5
EXPORT_VERSION = "1.0.0"


class SaveState(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    WRITING = "writing"


class DebouncedSaver:
    """Single pending-write state machine: idle -> pending -> writing -> idle.

    ``schedule`` (re)arms one timer; only its expiry writes. Writes never
    overlap: a timer that expires mid-write re-arms instead of re-entering,
    and ``flush`` waits for the in-flight write before writing again. A
    fired timer counts as writing until its task finishes.
    """

    def __init__(
        self,
        write: Callable[[], Awaitable[None]],
        delay: float = DEFAULT_SAVE_DELAY,
    ) -> None:
        self._write = write
        self.delay = delay
        self._timer: asyncio.TimerHandle | None = None
        self._deadline: float | None = None
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SaveState:
        if self._lock.locked() or self._write_pending():
            return SaveState.WRITING
        if self._timer is not None:
            return SaveState.PENDING
        return SaveState.IDLE

    @property
    def deadline(self) -> float | None:
        """Loop time at which the pending write fires, if any."""

        return self._deadline

    def schedule(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.delay
        self._timer = loop.call_later(self.delay, self._on_timer)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._deadline = None

    def close(self) -> None:
        """Drop the pending timer and any fired write that has not started."""

        self.cancel()
        self._cancel_unstarted_write()

    async def flush(self) -> None:
        self.cancel()
        self._cancel_unstarted_write()
        await self.write_now()

    async def write_now(self) -> None:
        async with self._lock:
            await self._write()

    def _write_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def _cancel_unstarted_write(self) -> None:
        # A fired timer whose task has not taken the lock yet; the caller
        # writes the same state itself.
        if self._write_pending() and not self._lock.locked():
            self._task.cancel()
            self._task = None

    def _on_timer(self) -> None:
        self._timer = None
        self._deadline = None
        if self._lock.locked():
            self.schedule()
            return
        self._task = asyncio.get_running_loop().create_task(
            self._debounced_write()
        )

    async def _debounced_write(self) -> None:
        try:
            await self.write_now()
        except PersistenceError:
            # Already reported through settingsSaveError; the next change
            # schedules another attempt.
            logger.debug("Debounced settings save failed", exc_info=True)


class SettingsStore:
    """Owns the installation-wide ``Settings`` object."""

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        clock: Clock = utc_now,
        events: EventEmitter | None = None,
        save_delay: float = DEFAULT_SAVE_DELAY,
        migrator: MigrationAdapter | None = None,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self.events = events or EventEmitter()
        self._migrator = migrator or MigrationAdapter(storage, clock=clock)
        self._settings = default_settings(clock)
        self._saver = DebouncedSaver(self._write_settings, save_delay)
        self._init_task: asyncio.Future[None] | None = None

    @property
    def initialized(self) -> bool:
        return self._init_task is not None and self._init_task.done()

    async def init(self) -> None:
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        await self._init_task

    async def _initialize(self) -> None:
        self._settings = await self._load_settings()
        self.events.emit(StoreEvent.INITIALIZED, self._snapshot())

    async def get_settings(self) -> Settings:
        await self.init()
        return self._snapshot()

    async def get_selected_template_id(self) -> str:
        await self.init()
        return self._settings.selected_template_id

    async def get_global_settings(self) -> GlobalSettings:
        await self.init()
        return copy.deepcopy(self._settings.global_settings)

    async def get_setting(self, key: str) -> Any:
        await self.init()
        if key not in GLOBAL_SETTING_KEYS:
            raise ValidationError([f"Unknown setting '{key}'"])
        return copy.deepcopy(getattr(self._settings.global_settings, key))

    async def set_selected_template_id(self, template_id: str) -> bool:
        await self.init()
        if self._settings.selected_template_id == template_id:
            return False

        self._settings = replace(
            self._settings,
            selected_template_id=template_id,
            last_updated=iso_timestamp(self._clock),
        )
        self.events.emit(StoreEvent.TEMPLATE_SELECTED, template_id)
        self.events.emit(StoreEvent.SETTINGS_CHANGED, self._snapshot())
        self._schedule_save()
        return True

    async def update_global_settings(self, partial: Mapping[str, Any]) -> bool:
        """Merge ``partial`` (attribute names) into the global settings.

        Returns ``False`` without emitting or saving when every incoming
        value already matches the current one.
        """

        await self.init()
        changes = coerce_global_changes(partial)
        current = self._settings.global_settings
        if not any(getattr(current, key) != value for key, value in changes.items()):
            return False

        self._settings = replace(
            self._settings,
            global_settings=replace(current, **changes),
            last_updated=iso_timestamp(self._clock),
        )
        self.events.emit(
            StoreEvent.GLOBAL_SETTINGS_CHANGED,
            copy.deepcopy(self._settings.global_settings),
        )
        self.events.emit(StoreEvent.SETTINGS_CHANGED, self._snapshot())
        self._schedule_save()
        return True

    async def update_setting(self, key: str, value: Any) -> bool:
        await self.init()
        coerced = coerce_global_changes({key: value})[key]
        current = self._settings.global_settings
        if getattr(current, key) == coerced:
            return False

        self._settings = replace(
            self._settings,
            global_settings=replace(current, **{key: coerced}),
            last_updated=iso_timestamp(self._clock),
        )
        self.events.emit(StoreEvent.SETTING_CHANGED, SettingChange(key, coerced))
        self.events.emit(
            StoreEvent.GLOBAL_SETTINGS_CHANGED,
            copy.deepcopy(self._settings.global_settings),
        )
        self.events.emit(StoreEvent.SETTINGS_CHANGED, self._snapshot())
        self._schedule_save()
        return True

    async def reset_settings(self) -> Settings:
        await self.init()
        self._settings = default_settings(self._clock)
        self.events.emit(StoreEvent.SETTINGS_RESET, self._snapshot())
        self.events.emit(StoreEvent.SETTINGS_CHANGED, self._snapshot())
        await self._saver.flush()
        return self._snapshot()

    async def export_settings(self) -> dict[str, Any]:
        await self.init()
        return {
            "settings": self._settings.to_dict(),
            "exportedAt": iso_timestamp(self._clock),
            "version": EXPORT_VERSION,
        }

    async def import_settings(self, import_data: Mapping[str, Any]) -> Settings:
        await self.init()
        imported = import_data.get("settings")
        if not isinstance(imported, Mapping):
            raise ValidationError(["Invalid import data"])

        self._settings = replace(
            self._migrator.upgrade(imported, self._settings),
            last_updated=iso_timestamp(self._clock),
        )
        self.events.emit(StoreEvent.SETTINGS_IMPORTED, self._snapshot())
        self.events.emit(StoreEvent.SETTINGS_CHANGED, self._snapshot())
        await self._saver.flush()
        return self._snapshot()

    async def force_save(self) -> None:
        """Write now, pre-empting any pending debounce timer."""

        await self._saver.flush()

    def is_saving(self) -> bool:
        return self._saver.state is not SaveState.IDLE

    @property
    def save_state(self) -> SaveState:
        return self._saver.state

    def close(self) -> None:
        """Drop the pending timer and every subscriber.

        Call ``force_save`` first when pending changes must survive.
        """

        self._saver.close()
        self.events.clear()

    def _snapshot(self) -> Settings:
        return copy.deepcopy(self._settings)

    def _schedule_save(self) -> None:
        self._saver.schedule()
        self.events.emit(StoreEvent.SETTINGS_SAVING, True)

    async def _load_settings(self) -> Settings:
        defaults = default_settings(self._clock)
        try:
            result = await self._storage.get([SETTINGS_KEY])
        except PersistenceError as exc:
            logger.error("Failed to load settings, using defaults: %s", exc)
            return defaults

        stored = result.get(SETTINGS_KEY)
        if isinstance(stored, Mapping):
            return self._migrator.upgrade(stored, defaults)
        return await self._migrator.migrate(defaults)

    async def _write_settings(self) -> None:
        payload = self._settings.to_dict()
        try:
            await self._storage.set({SETTINGS_KEY: payload})
        except PersistenceError as exc:
            logger.error("Failed to save settings: %s", exc)
            self.events.emit(StoreEvent.SETTINGS_SAVE_ERROR, exc)
            raise
        self.events.emit(StoreEvent.SETTINGS_SAVED, self._snapshot())


__all__ = ["DebouncedSaver", "SaveState", "SettingsStore"]
