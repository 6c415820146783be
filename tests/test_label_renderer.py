import unittest

from PIL import Image

from errors import (
    ImageLoadError,
    InvalidQuantity,
    MissingRequiredField,
    TemplateNotFound,
)
from label_renderer import LabelRenderer, resolve_parameters
from label_templates.base import Align, ConditionSettings, ConditionPosition
from label_templates.builtin import BUILT_IN_TEMPLATES, DEFAULT_TEMPLATE_ID
from label_types import DataRecord, ImageInstruction, TextInstruction
from settings import BarcodeFormat, GlobalSettings
from settings_store import SettingsStore
from storage import MemoryStorage
from template_store import TemplateStore


class FakeEncoder:
    def __init__(self) -> None:
        self.calls = []

    def encode(self, data, barcode_format):
        self.calls.append((data, barcode_format))
        return Image.new("RGB", (120, 40), "white")


class FakeLoader:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.urls = []

    async def load(self, url):
        self.urls.append(url)
        if self.fail:
            raise ImageLoadError("boom")
        return Image.new("RGB", (10, 10), "red")


def _condition_template(position=None):
    data = {
        "name": "With Condition",
        "width": 57,
        "height": 32,
        "units": "mm",
        "orientation": "landscape",
        "elements": {
            "barcode": {"x": 4, "y": 2, "width": 49, "height": 12},
            "fnsku": {"x": 28.5, "y": 17, "fontSize": 8, "align": "center"},
            "title": {"x": 2, "y": 26, "fontSize": 6, "maxLength": 20},
            "condition": {"x": 2, "y": 30, "fontSize": 5},
            "image": {"x": 40, "y": 18, "width": 10, "height": 10},
        },
        "contentInclusion": {"images": True},
    }
    if position is not None:
        data["conditionSettings"] = {"enabled": True, "position": position}
    return data


def _texts(page):
    return [item for item in page if isinstance(item, TextInstruction)]


class LabelRendererTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.storage = MemoryStorage()
        self.templates = TemplateStore(self.storage)
        self.settings = SettingsStore(self.storage, save_delay=0.01)
        self.encoder = FakeEncoder()
        self.loader = FakeLoader()
        self.renderer = LabelRenderer(
            self.templates,
            self.settings,
            encoder=self.encoder,
            image_loader=self.loader,
        )

    async def asyncTearDown(self) -> None:
        self.settings.close()

    async def test_default_template_layout(self) -> None:
        record = DataRecord(fnsku="X001ABC123", sku="SKU-1", title="Widget")
        pages = await self.renderer.generate_label(record)

        self.assertEqual(len(pages), 1)
        page = pages[0]
        self.assertIsInstance(page[0], ImageInstruction)
        self.assertEqual(
            [item.text for item in _texts(page)],
            ["X001ABC123", "SKU: SKU-1", "Widget"],
        )
        self.assertEqual(self.encoder.calls, [("X001ABC123", BarcodeFormat.CODE128)])

    async def test_accepts_mapping_record(self) -> None:
        pages = await self.renderer.generate_label({"fnsku": "X001"})
        self.assertEqual(_texts(pages[0])[0].text, "X001")

    async def test_quantity_shares_single_barcode(self) -> None:
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001ABC123"), quantity=3
        )

        self.assertEqual(len(pages), 3)
        self.assertEqual(len(self.encoder.calls), 1)
        first, second, third = (page[0].image for page in pages)
        self.assertIs(first, second)
        self.assertIs(second, third)

    async def test_font_size_precedence(self) -> None:
        await self.settings.update_global_settings(
            {"font_size_overrides": {"fnsku": 12}}
        )
        template = BUILT_IN_TEMPLATES[DEFAULT_TEMPLATE_ID]
        params = resolve_parameters(template, await self.settings.get_global_settings())

        self.assertEqual(params.font_sizes["fnsku"], 12)
        self.assertEqual(params.font_sizes["sku"], 11)
        self.assertEqual(params.font_sizes["title"], 6)
        self.assertEqual(params.font_sizes["condition"], 5)

    async def test_settings_override_changes_format(self) -> None:
        await self.renderer.generate_label(
            DataRecord(fnsku="X001"),
            settings_override={"barcode_format": "CODE39"},
        )
        self.assertEqual(self.encoder.calls[0][1], BarcodeFormat.CODE39)
        global_settings = await self.settings.get_global_settings()
        self.assertEqual(global_settings.barcode_format, BarcodeFormat.CODE128)

    async def test_missing_fnsku(self) -> None:
        with self.assertRaises(MissingRequiredField):
            await self.renderer.generate_label(DataRecord(fnsku="  "))
        self.assertEqual(self.encoder.calls, [])

    async def test_invalid_quantity(self) -> None:
        for quantity in (0, -1, True, 1.5):
            with self.subTest(quantity=quantity):
                with self.assertRaises(InvalidQuantity):
                    await self.renderer.generate_label(
                        DataRecord(fnsku="X001"), quantity=quantity
                    )

    async def test_unknown_template(self) -> None:
        with self.assertRaises(TemplateNotFound):
            await self.renderer.generate_label(
                DataRecord(fnsku="X001"), template="user_missing"
            )

    async def test_stale_selection_falls_back(self) -> None:
        await self.settings.set_selected_template_id("user_gone")
        template = await self.renderer.resolve_template()
        self.assertEqual(template.id, DEFAULT_TEMPLATE_ID)

    async def test_condition_defaults_to_new(self) -> None:
        template = await self.templates.create_template(_condition_template())
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", title="Widget"), template.id
        )
        texts = [item.text for item in _texts(pages[0])]
        self.assertEqual(texts[-1], "NEW")

    async def test_record_condition_wins(self) -> None:
        template = await self.templates.create_template(_condition_template())
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", condition="USED"), template.id
        )
        self.assertEqual(_texts(pages[0])[-1].text, "USED")

    async def test_condition_bottom_right(self) -> None:
        template = await self.templates.create_template(
            _condition_template(ConditionPosition.BOTTOM_RIGHT.value)
        )
        pages = await self.renderer.generate_label(DataRecord(fnsku="X001"), template)
        condition = _texts(pages[0])[-1]
        self.assertEqual(condition.align, Align.RIGHT)
        self.assertEqual(condition.x, 55)

    async def test_title_prefix_then_truncation(self) -> None:
        template = await self.templates.create_template(
            _condition_template(ConditionPosition.TITLE_PREFIX.value)
        )
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", title="A very long product title"), template
        )
        texts = [item.text for item in _texts(pages[0])]

        self.assertEqual(texts[-1], "NEW - A very long...")
        self.assertEqual(len(texts[-1]), 20)
        self.assertNotIn("NEW", texts[:-1])

    async def test_global_condition_settings_win(self) -> None:
        await self.settings.update_global_settings(
            {"condition_settings": ConditionSettings(enabled=False)}
        )
        template = await self.templates.create_template(
            _condition_template(ConditionPosition.BOTTOM_RIGHT.value)
        )
        pages = await self.renderer.generate_label(DataRecord(fnsku="X001"), template)
        self.assertNotIn("NEW", [item.text for item in _texts(pages[0])])

    async def test_long_title_is_truncated_before_scaling(self) -> None:
        title = "W" * 100
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", title=title)
        )
        title_text = _texts(pages[0])[-1]

        self.assertEqual(len(title_text.text), 50)
        self.assertTrue(title_text.text.endswith("..."))
        self.assertLess(title_text.font_size, 6)

    async def test_image_loaded_once(self) -> None:
        template = await self.templates.create_template(_condition_template())
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", image="https://example.com/a.jpg"),
            template,
            quantity=2,
        )
        self.assertEqual(self.loader.urls, ["https://example.com/a.jpg"])
        self.assertIsInstance(pages[1][-1], ImageInstruction)

    async def test_image_failure_is_skipped(self) -> None:
        self.loader.fail = True
        template = await self.templates.create_template(_condition_template())
        pages = await self.renderer.generate_label(
            DataRecord(fnsku="X001", image="https://example.com/a.jpg"), template
        )
        images = [item for item in pages[0] if isinstance(item, ImageInstruction)]
        self.assertEqual(len(images), 1)

    async def test_non_url_image_is_ignored(self) -> None:
        template = await self.templates.create_template(_condition_template())
        await self.renderer.generate_label(
            DataRecord(fnsku="X001", image="data:image/png;base64,AAAA"), template
        )
        self.assertEqual(self.loader.urls, [])

    def test_resolve_parameters_defaults(self) -> None:
        template = BUILT_IN_TEMPLATES[DEFAULT_TEMPLATE_ID]
        params = resolve_parameters(template, GlobalSettings())
        self.assertEqual(params.condition, ConditionSettings())
        self.assertEqual(params.barcode_format, BarcodeFormat.CODE128)


if __name__ == "__main__":
    unittest.main()
