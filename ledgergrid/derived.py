"""Derived columns: weekly subtotals, the balance and grand column totals."""
from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Union

from .core import EMPTY, is_blank, number_cell, parse_amount, try_parse_amount
from .grid import GridModel, Origin
from .layout import Layout
from .logging_setup import get_logger

log = get_logger("ledgergrid.derived")


class DerivedColumnEngine:
    def __init__(self, grid: GridModel, layout: Layout):
        if grid.cols != len(layout):
            raise ValueError(f"grid has {grid.cols} columns, layout has {len(layout)}")
        self.grid = grid
        self.layout = layout
        self._updating = False
        self._derived = set(layout.derived_cols)

    @property
    def updating(self) -> bool:
        return self._updating

    @contextmanager
    def suspended(self):
        self._updating = True
        try:
            yield
        finally:
            self._updating = False

    def affects(self, col: int) -> bool:
        return col == self.layout.amount1_col or self.layout.is_period(col)

    def row_in_use(self, row: int) -> bool:
        return any(
            not is_blank(v)
            for col, v in enumerate(self.grid.row(row))
            if col not in self._derived
        )

    def subtotal(self, row: int, col: int) -> Decimal:
        start, end = self.layout[col].subtotal_range
        return sum((parse_amount(self.grid.get(row, c)) for c in range(start, end + 1)), Decimal("0"))

    def collected(self, row: int) -> Decimal:
        return sum((parse_amount(self.grid.get(row, c)) for c in self.layout.period_cols), Decimal("0"))

    def balance(self, row: int) -> Decimal:
        return parse_amount(self.grid.get(row, self.layout.amount1_col)) - self.collected(row)

    def _write(self, row: int, col: int, value) -> None:
        if self.grid.get(row, col) != value:
            self.grid.set(row, col, value, Origin.DERIVED)

    def recompute_row(self, row: int) -> None:
        """Rewrite every derived cell of ``row``.

        A row whose input cells are all blank gets blank derived cells so an
        untouched or cleared account does not look like a zero balance.
        """
        with self.suspended():
            if not self.row_in_use(row):
                for col in self._derived:
                    self._write(row, col, EMPTY)
                return
            for col in self.layout.subtotal_cols:
                self._write(row, col, number_cell(self.subtotal(row, col)))
            self._write(row, self.layout.balance_col, number_cell(self.balance(row)))

    def recompute_all(self) -> None:
        for row in range(self.grid.rows):
            self.recompute_row(row)
        log.debug("Recomputed derived columns for %d rows", self.grid.rows)


def compute_column_totals(grid: GridModel, layout: Layout) -> list[Union[int, float]]:
    """Sum every column over all rows; text that does not parse counts as 0."""
    totals = [Decimal("0")] * len(layout)
    for row in grid.snapshot_all_rows():
        for col, value in enumerate(row):
            totals[col] += parse_amount(value)
    return [number_cell(t) for t in totals]


def balance_tone(value) -> str:
    """Classify a balance cell: ``due`` (> 0), ``settled`` (0), ``overpaid`` (< 0).

    Blank or non-numeric cells give ``""``.
    """
    amount = try_parse_amount(value)
    if amount is None:
        return ""
    if amount > 0:
        return "due"
    if amount == 0:
        return "settled"
    return "overpaid"