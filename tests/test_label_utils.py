import unittest

from reportlab.lib.units import inch, mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from label_templates.base import Units
from label_templates.utils import (
    default_max_width,
    fit_font_size,
    font_name,
    text_width,
    to_points,
    truncate_text,
)


class LabelUtilsTests(unittest.TestCase):
    def test_font_name(self) -> None:
        self.assertEqual(font_name(False), "Helvetica")
        self.assertEqual(font_name(True), "Helvetica-Bold")

    def test_to_points(self) -> None:
        self.assertAlmostEqual(to_points(10, Units.MM), 10 * mm)
        self.assertAlmostEqual(to_points(2, Units.IN), 2 * inch)

    def test_default_max_width_in_template_units(self) -> None:
        self.assertAlmostEqual(default_max_width(Units.MM), 45.0)
        self.assertAlmostEqual(default_max_width(Units.IN), 45.0 / 25.4)

    def test_text_width_matches_reportlab(self) -> None:
        expected = stringWidth("X001ABC", "Helvetica-Bold", 10) / mm
        self.assertAlmostEqual(text_width("X001ABC", 10, True, Units.MM), expected)

    def test_truncate_text(self) -> None:
        self.assertEqual(truncate_text("Short", 10), "Short")
        self.assertEqual(truncate_text("Exactly10!", 10), "Exactly10!")
        self.assertEqual(truncate_text("Hello wonderful world", 10), "Hello w...")
        self.assertEqual(truncate_text("", 10), "")

    def test_fit_font_size_keeps_size_when_text_fits(self) -> None:
        self.assertEqual(fit_font_size("Hi", 8, 45, False, Units.MM), 8)

    def test_fit_font_size_scales_proportionally(self) -> None:
        text = "W" * 40
        size = fit_font_size(text, 10, 20, False, Units.MM)
        self.assertLess(size, 10)
        self.assertAlmostEqual(text_width(text, size, False, Units.MM), 20)

    def test_fit_font_size_ignores_empty_text(self) -> None:
        self.assertEqual(fit_font_size("", 8, 1, False, Units.MM), 8)


if __name__ == "__main__":
    unittest.main()
