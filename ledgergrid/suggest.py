from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core import EMPTY, NO_PAYMENT, Cell, is_blank, try_parse_amount
from .grid import GridModel
from .layout import ColumnKind, Layout


@dataclass(frozen=True)
class Suggestion:
    carry_forward: Cell
    no_payment: str = NO_PAYMENT

    def value_for(self, choice: str) -> Cell:
        if choice == "carry_forward":
            return self.carry_forward
        if choice == "no_payment":
            return self.no_payment
        raise ValueError(f"unknown suggestion {choice!r}")


def previous_collection(grid: GridModel, layout: Layout, row: int, col: int) -> Optional[Cell]:
    """Last non-zero payment left of ``col`` in ``row``, skipping subtotals and "-"."""
    first = layout.first_period_col
    if first is None:
        return None
    for c in range(col - 1, first - 1, -1):
        if layout[c].kind is ColumnKind.SUBTOTAL:
            continue
        value = grid.get(row, c)
        if is_blank(value) or value == NO_PAYMENT:
            continue
        amount = try_parse_amount(value)
        if amount is not None and amount != 0:
            return value
    return None


def suggest(grid: GridModel, layout: Layout, row: int, col: int) -> Optional[Suggestion]:
    """Propose values for an unfilled period cell; ``None`` for any other column.

    The carry-forward candidate is the previous collection in the row or,
    when there is none, the row's instalment amount.
    """
    if not layout.is_period(col):
        return None
    value = previous_collection(grid, layout, row, col)
    if value is None:
        value = grid.get(row, layout.amount2_col)
        if is_blank(value):
            value = EMPTY
    return Suggestion(value)
