import asyncio
import unittest

from errors import PersistenceError, ValidationError
from events import SettingChange, StoreEvent
from label_templates.base import ConditionPosition, ConditionSettings
from label_templates.builtin import DEFAULT_TEMPLATE_ID
from settings import SCHEMA_VERSION, SETTINGS_KEY, BarcodeFormat
from settings_store import DebouncedSaver, SaveState, SettingsStore
from storage import MemoryStorage


class FlakyStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    async def set(self, items):
        if self.fail:
            raise PersistenceError("disk full")
        await super().set(items)


class SettingsStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.storage = FlakyStorage()
        self.store = SettingsStore(self.storage, save_delay=0.05)
        self.received = []
        for event in StoreEvent:
            self.store.events.on(
                event,
                lambda payload, event=event: self.received.append((event, payload)),
            )

    async def asyncTearDown(self) -> None:
        self.store.close()

    def _names(self):
        return [event for event, _ in self.received]

    def _settings_writes(self):
        return [write for write in self.storage.writes if SETTINGS_KEY in write]

    async def test_defaults(self) -> None:
        settings = await self.store.get_settings()
        self.assertEqual(settings.selected_template_id, DEFAULT_TEMPLATE_ID)
        self.assertEqual(settings.global_settings.barcode_format, BarcodeFormat.CODE128)
        self.assertTrue(self.store.initialized)
        self.assertIn(StoreEvent.INITIALIZED, self._names())

    async def test_init_is_shared(self) -> None:
        await asyncio.gather(self.store.init(), self.store.init())
        self.assertEqual(self._names().count(StoreEvent.INITIALIZED), 1)

    async def test_unchanged_update_is_suppressed(self) -> None:
        await self.store.init()
        self.received.clear()

        changed = await self.store.update_global_settings({"barcode_format": "CODE128"})

        self.assertFalse(changed)
        self.assertEqual(self.received, [])
        self.assertEqual(self.store.save_state, SaveState.IDLE)

    async def test_repeated_update_changes_once(self) -> None:
        await self.store.init()
        self.received.clear()
        changes = {"barcode_format": "CODE39", "auto_open_tabs": True}

        self.assertTrue(await self.store.update_global_settings(changes))
        self.assertFalse(await self.store.update_global_settings(changes))

        self.assertEqual(self._names().count(StoreEvent.SETTINGS_CHANGED), 1)
        self.assertEqual(self._names().count(StoreEvent.SETTINGS_SAVING), 1)

    async def test_update_emits_and_schedules(self) -> None:
        changed = await self.store.update_global_settings(
            {"barcode_format": "code39", "debug_mode": "on"}
        )

        self.assertTrue(changed)
        names = self._names()
        self.assertIn(StoreEvent.GLOBAL_SETTINGS_CHANGED, names)
        self.assertIn(StoreEvent.SETTINGS_CHANGED, names)
        self.assertIn(StoreEvent.SETTINGS_SAVING, names)
        self.assertEqual(self.store.save_state, SaveState.PENDING)
        global_settings = await self.store.get_global_settings()
        self.assertEqual(global_settings.barcode_format, BarcodeFormat.CODE39)
        self.assertTrue(global_settings.debug_mode)

    async def test_unknown_setting_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await self.store.update_global_settings({"colour": "red"})
        with self.assertRaises(ValidationError):
            await self.store.get_setting("colour")

    async def test_invalid_value_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await self.store.update_setting("font_size_overrides", {"fnsku": -1})

    async def test_update_setting_emits_change(self) -> None:
        await self.store.update_setting("auto_open_tabs", True)
        payloads = [
            payload
            for event, payload in self.received
            if event is StoreEvent.SETTING_CHANGED
        ]
        self.assertEqual(payloads, [SettingChange("auto_open_tabs", True)])
        self.assertTrue(await self.store.get_setting("auto_open_tabs"))

    async def test_debounce_collapses_writes(self) -> None:
        await self.store.init()
        await self.store.update_setting("debug_mode", True)
        await self.store.set_selected_template_id("built_in:shipping_4x6")
        await self.store.update_setting("auto_extract", False)
        self.assertEqual(self._settings_writes(), [])

        await asyncio.sleep(0.2)

        writes = self._settings_writes()
        self.assertEqual(len(writes), 1)
        persisted = writes[0][SETTINGS_KEY]
        self.assertEqual(persisted["schemaVersion"], SCHEMA_VERSION)
        self.assertEqual(persisted["selectedTemplateId"], "built_in:shipping_4x6")
        self.assertFalse(persisted["globalSettings"]["autoExtract"])
        self.assertIn(StoreEvent.SETTINGS_SAVED, self._names())
        self.assertEqual(self.store.save_state, SaveState.IDLE)

    async def test_force_save_writes_immediately(self) -> None:
        await self.store.update_setting("debug_mode", True)
        await self.store.force_save()

        self.assertEqual(len(self._settings_writes()), 1)
        self.assertFalse(self.store.is_saving())

        await asyncio.sleep(0.1)
        self.assertEqual(len(self._settings_writes()), 1)

    async def test_reset_settings(self) -> None:
        await self.store.update_setting("debug_mode", True)
        settings = await self.store.reset_settings()

        self.assertFalse(settings.global_settings.debug_mode)
        self.assertIn(StoreEvent.SETTINGS_RESET, self._names())
        persisted = self._settings_writes()[-1][SETTINGS_KEY]
        self.assertFalse(persisted["globalSettings"]["debugMode"])

    async def test_save_error_is_reported(self) -> None:
        await self.store.init()
        self.storage.fail = True
        await self.store.update_setting("debug_mode", True)

        with self.assertRaises(PersistenceError):
            await self.store.force_save()
        self.assertIn(StoreEvent.SETTINGS_SAVE_ERROR, self._names())
        self.assertTrue((await self.store.get_global_settings()).debug_mode)

    async def test_debounced_save_error_is_not_raised(self) -> None:
        await self.store.init()
        self.storage.fail = True
        await self.store.update_setting("debug_mode", True)
        await asyncio.sleep(0.2)

        self.assertIn(StoreEvent.SETTINGS_SAVE_ERROR, self._names())
        self.assertEqual(self.store.save_state, SaveState.IDLE)

    async def test_export_import_round_trip(self) -> None:
        await self.store.update_global_settings(
            {
                "condition_settings": {
                    "enabled": True,
                    "text": "USED",
                    "position": "bottom-right",
                }
            }
        )
        exported = await self.store.export_settings()
        self.assertEqual(exported["version"], "1.0.0")

        await self.store.reset_settings()
        imported = await self.store.import_settings(exported)

        self.assertEqual(
            imported.global_settings.condition_settings,
            ConditionSettings(
                enabled=True, text="USED", position=ConditionPosition.BOTTOM_RIGHT
            ),
        )
        self.assertIn(StoreEvent.SETTINGS_IMPORTED, self._names())

    async def test_import_rejects_garbage(self) -> None:
        with self.assertRaises(ValidationError):
            await self.store.import_settings({"settings": "nope"})

    async def test_loads_unified_record(self) -> None:
        storage = MemoryStorage(
            {
                SETTINGS_KEY: {
                    "schemaVersion": SCHEMA_VERSION,
                    "selectedTemplateId": "user_abc",
                    "globalSettings": {"barcodeFormat": "EAN13"},
                    "lastUpdated": "2025-01-01T00:00:00.000Z",
                }
            }
        )
        store = SettingsStore(storage)
        settings = await store.get_settings()
        store.close()

        self.assertEqual(settings.selected_template_id, "user_abc")
        self.assertEqual(settings.global_settings.barcode_format, BarcodeFormat.EAN13)
        self.assertTrue(settings.global_settings.auto_extract)

    async def test_listener_failure_does_not_break_store(self) -> None:
        def broken(payload):
            raise RuntimeError("listener bug")

        self.store.events.on(StoreEvent.SETTINGS_CHANGED, broken)
        with self.assertLogs("events", level="WARNING"):
            self.assertTrue(await self.store.update_setting("debug_mode", True))


class DebouncedSaverTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.writes = 0
        self.saver = DebouncedSaver(self._write, delay=60)

    async def asyncTearDown(self) -> None:
        self.saver.close()

    async def _write(self) -> None:
        self.writes += 1

    async def test_fired_timer_counts_as_writing(self) -> None:
        self.saver.schedule()
        self.assertEqual(self.saver.state, SaveState.PENDING)

        self.saver._on_timer()

        self.assertEqual(self.saver.state, SaveState.WRITING)

    async def test_flush_after_timer_fired_writes_once(self) -> None:
        self.saver.schedule()
        self.saver._on_timer()

        await self.saver.flush()
        await asyncio.sleep(0.01)

        self.assertEqual(self.writes, 1)
        self.assertEqual(self.saver.state, SaveState.IDLE)

    async def test_fired_timer_writes_on_its_own(self) -> None:
        self.saver.schedule()
        self.saver._on_timer()
        await asyncio.sleep(0.01)

        self.assertEqual(self.writes, 1)
        self.assertEqual(self.saver.state, SaveState.IDLE)

    async def test_close_drops_unstarted_write(self) -> None:
        self.saver.schedule()
        self.saver._on_timer()
        self.saver.close()
        await asyncio.sleep(0.01)

        self.assertEqual(self.writes, 0)
        self.assertEqual(self.saver.state, SaveState.IDLE)


if __name__ == "__main__":
    unittest.main()
