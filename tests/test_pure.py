import os
import sys
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from stockdesk.utils.pure import fmt_money, fmt_pct, generate_markdown_table  # noqa: E402


class PureTestCase(unittest.TestCase):
    def test_fmt_money_rounds_half_up(self):
        self.assertEqual(fmt_money(45), "Rs.45.00")
        self.assertEqual(fmt_money(2.675), "Rs.2.68")
        self.assertEqual(fmt_money(0.125, currency=""), "0.13")
        self.assertEqual(fmt_money(None), "Rs.0.00")

    def test_fmt_pct(self):
        self.assertEqual(fmt_pct(100 / 3), "33.3%")
        self.assertEqual(fmt_pct(33.35), "33.4%")
        self.assertEqual(fmt_pct(12.5, digits=0), "13%")

    def test_markdown_table(self):
        md = generate_markdown_table(["Item", "Qty"], [["a|b", 2]], ["l", "r"])
        self.assertEqual(
            md.splitlines(),
            ["| Item | Qty |", "| :--- | ---: |", "| a\\|b | 2 |"],
        )
        self.assertEqual(generate_markdown_table(["x"], []), "")
        with self.assertRaises(ValueError):
            generate_markdown_table(["a", "b"], [[1, 2]], ["l"])

    def test_markdown_table_header_from_first_row(self):
        md = generate_markdown_table(None, [["k", "v"], ["Name", "Jane"]])
        self.assertTrue(md.startswith("| k | v |"))


if __name__ == "__main__":
    unittest.main()
