import unittest

from ledgergrid.grid import GridModel
from ledgergrid.layout import build_layout
from ledgergrid.suggest import Suggestion, suggest


class SuggestionTests(unittest.TestCase):
    def setUp(self):
        self.layout = build_layout("daily", 2024, 8)
        self.grid = GridModel(len(self.layout))
        self.days = self.layout.period_cols

    def fill(self, row, values):
        for i, v in enumerate(values):
            self.grid.set(row, self.days[i], v)

    def test_carry_forward_skips_no_payment(self):
        self.fill(0, ["-", "-", 200, "-", "-", "-", "-", "-", "-"])
        found = suggest(self.grid, self.layout, 0, self.days[9])
        self.assertEqual(found, Suggestion(200, "-"))

    def test_zero_is_not_a_collection(self):
        self.fill(0, [150, 0, "0", ""])
        found = suggest(self.grid, self.layout, 0, self.days[4])
        self.assertEqual(found.carry_forward, 150)

    def test_keeps_original_text(self):
        self.fill(0, ["1,500"])
        found = suggest(self.grid, self.layout, 0, self.days[3])
        self.assertEqual(found.carry_forward, "1,500")

    def test_falls_back_to_instalment_amount(self):
        self.grid.set(0, self.layout.amount2_col, 250)
        self.fill(0, ["-", "-"])
        found = suggest(self.grid, self.layout, 0, self.days[2])
        self.assertEqual(found.carry_forward, 250)

    def test_first_day_uses_instalment_amount(self):
        self.grid.set(0, self.layout.amount2_col, 80)
        found = suggest(self.grid, self.layout, 0, self.days[0])
        self.assertEqual(found.carry_forward, 80)

    def test_nothing_to_suggest(self):
        found = suggest(self.grid, self.layout, 0, self.days[5])
        self.assertEqual(found.carry_forward, "")
        self.assertEqual(found.no_payment, "-")

    def test_later_values_are_ignored(self):
        self.fill(0, ["", "", "", 500])
        self.grid.set(0, self.layout.amount2_col, 40)
        found = suggest(self.grid, self.layout, 0, self.days[2])
        self.assertEqual(found.carry_forward, 40)

    def test_weekly_skips_subtotal_columns(self):
        layout = build_layout("weekly", 2025, 0)
        grid = GridModel(len(layout))
        days = layout.period_cols
        grid.set(0, days[6], 75)
        grid.set(0, layout.subtotal_cols[0], 9999)
        found = suggest(grid, layout, 0, days[7])
        self.assertEqual(found.carry_forward, 75)

    def test_only_period_columns(self):
        for col in (0, self.layout.amount1_col, self.layout.balance_col, 45):
            self.assertIsNone(suggest(self.grid, self.layout, 0, col))

    def test_idempotent_and_pure(self):
        self.fill(0, [120, "-"])
        before = self.grid.snapshot_all_rows()
        first = suggest(self.grid, self.layout, 0, self.days[2])
        second = suggest(self.grid, self.layout, 0, self.days[2])
        self.assertEqual(first, second)
        self.assertEqual(self.grid.snapshot_all_rows(), before)

    def test_value_for(self):
        found = Suggestion(300)
        self.assertEqual(found.value_for("carry_forward"), 300)
        self.assertEqual(found.value_for("no_payment"), "-")
        with self.assertRaises(ValueError):
            found.value_for("other")


if __name__ == "__main__":
    unittest.main()
