import unittest
from decimal import Decimal

from ledgergrid.core import (
    column_name,
    format_amount,
    is_blank,
    money2,
    norm_spaces,
    number_cell,
    parse_amount,
    try_parse_amount,
)


class CoreTests(unittest.TestCase):
    def test_parse_amount_grouping(self):
        self.assertEqual(parse_amount("1,234"), Decimal("1234"))
        self.assertEqual(parse_amount("1,234.56"), Decimal("1234.56"))
        self.assertEqual(parse_amount(" 12 500 "), Decimal("12500"))

    def test_parse_amount_numbers(self):
        self.assertEqual(parse_amount(350), Decimal("350"))
        self.assertEqual(parse_amount(0.1), Decimal("0.1"))
        self.assertEqual(parse_amount("-99.9"), Decimal("-99.9"))

    def test_parse_amount_non_numeric_is_zero(self):
        self.assertEqual(parse_amount(""), Decimal("0"))
        self.assertEqual(parse_amount(None), Decimal("0"))
        self.assertEqual(parse_amount("-"), Decimal("0"))
        self.assertEqual(parse_amount("paid"), Decimal("0"))

    def test_parse_amount_leading_number(self):
        self.assertEqual(parse_amount("12abc"), Decimal("12"))

    def test_try_parse_amount_none(self):
        self.assertIsNone(try_parse_amount("-"))
        self.assertIsNone(try_parse_amount("   "))
        self.assertIsNone(try_parse_amount("n/a"))
        self.assertEqual(try_parse_amount("0"), Decimal("0"))

    def test_is_blank(self):
        self.assertTrue(is_blank(""))
        self.assertTrue(is_blank("  "))
        self.assertTrue(is_blank(None))
        self.assertFalse(is_blank(0))
        self.assertFalse(is_blank("-"))

    def test_number_cell(self):
        self.assertEqual(number_cell(Decimal("700")), 700)
        self.assertIsInstance(number_cell(Decimal("700.0")), int)
        self.assertEqual(number_cell(Decimal("2.5")), 2.5)

    def test_format_amount(self):
        self.assertEqual(format_amount(1500), "1,500")
        self.assertEqual(format_amount("2500.5"), "2,500.50")
        self.assertEqual(format_amount(""), "")
        self.assertEqual(format_amount("-"), "-")

    def test_column_name(self):
        self.assertEqual(column_name(0), "A")
        self.assertEqual(column_name(25), "Z")
        self.assertEqual(column_name(26), "AA")
        self.assertEqual(column_name(49), "AX")

    def test_norm_spaces(self):
        self.assertEqual(norm_spaces("  John  Smith "), "John Smith")

    def test_money_round(self):
        self.assertEqual(money2(Decimal("1.005")), Decimal("1.01"))


if __name__ == "__main__":
    unittest.main()
