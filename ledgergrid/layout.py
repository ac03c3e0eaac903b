"""Column layout for one month of a ledger sheet.

A layout is the fixed, ordered column schema of a sheet: nine fixed
identity/amount columns (the last one being the derived balance), one
period column per calendar day, optional weekly subtotal columns and
filler columns up to the sheet width.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from .logging_setup import get_logger
from .settings import DAYS_PER_SUBTOTAL, FIXED_COLUMN_COUNT, GRID_COLS

log = get_logger("ledgergrid.layout")


class LedgerFormat(str, Enum):
    WEEKLY = "weekly"
    DAILY = "daily"

    @property
    def account_type(self) -> str:
        return "weekline" if self is LedgerFormat.WEEKLY else "dailyline"


class ColumnKind(str, Enum):
    FIXED = "fixed"
    PERIOD = "period"
    SUBTOTAL = "subtotal"
    BALANCE = "balance"
    FILLER = "filler"


# Positional roles of the fixed columns; shared layouts may relabel them
# but never reorder them.
FIXED_ROLES = (
    "name",
    "date",
    "address",
    "address2",
    "account",
    "advance",
    "amount1",
    "amount2",
    "balance",
)


@dataclass(frozen=True)
class FixedColumn:
    title: str
    type: str = "text"
    width: int = 120


DEFAULT_FIXED_COLUMNS = {
    LedgerFormat.WEEKLY: (
        FixedColumn("Name", "text", 200),
        FixedColumn("Date", "calendar", 120),
        FixedColumn("Address", "text", 220),
        FixedColumn("Address 2", "text", 220),
        FixedColumn("A/C No.", "text", 180),
        FixedColumn("Adv", "text", 120),
        FixedColumn("Amount 1", "numeric", 140),
        FixedColumn("Amount", "numeric", 140),
        FixedColumn("Balance", "numeric", 140),
    ),
    LedgerFormat.DAILY: (
        FixedColumn("Name", "text", 200),
        FixedColumn("Date", "calendar", 120),
        FixedColumn("Address", "text", 220),
        FixedColumn("Phone", "text", 160),
        FixedColumn("A/C No.", "text", 180),
        FixedColumn("Adv", "text", 120),
        FixedColumn("Loan Amount", "numeric", 140),
        FixedColumn("Daily Amount", "numeric", 140),
        FixedColumn("Balance", "numeric", 140),
    ),
}


@dataclass(frozen=True)
class ColumnSpec:
    kind: ColumnKind
    label: str
    period_index: Optional[int] = None
    subtotal_range: Optional[tuple[int, int]] = None
    role: Optional[str] = None
    input_type: str = "text"
    width: int = 90

    @property
    def read_only(self) -> bool:
        return self.kind in (ColumnKind.SUBTOTAL, ColumnKind.BALANCE)

    @property
    def derived(self) -> bool:
        return self.read_only


@dataclass(frozen=True)
class Layout:
    fmt: LedgerFormat
    year: int
    month: int
    columns: tuple[ColumnSpec, ...]
    days_in_month: int
    _roles: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        roles = {c.role: i for i, c in enumerate(self.columns) if c.role}
        object.__setattr__(self, "_roles", MappingProxyType(roles))

    def __len__(self) -> int:
        return len(self.columns)

    def __getitem__(self, col: int) -> ColumnSpec:
        return self.columns[col]

    @property
    def labels(self) -> list[str]:
        return [c.label for c in self.columns]

    @property
    def amount1_col(self) -> int:
        return self._roles["amount1"]

    @property
    def amount2_col(self) -> int:
        return self._roles["amount2"]

    @property
    def balance_col(self) -> int:
        return self._roles["balance"]

    @property
    def period_cols(self) -> list[int]:
        return [i for i, c in enumerate(self.columns) if c.kind is ColumnKind.PERIOD]

    @property
    def subtotal_cols(self) -> list[int]:
        return [i for i, c in enumerate(self.columns) if c.kind is ColumnKind.SUBTOTAL]

    @property
    def derived_cols(self) -> list[int]:
        return [i for i, c in enumerate(self.columns) if c.derived]

    @property
    def first_period_col(self) -> Optional[int]:
        cols = self.period_cols
        return cols[0] if cols else None

    def is_period(self, col: int) -> bool:
        return 0 <= col < len(self.columns) and self.columns[col].kind is ColumnKind.PERIOD

    def subtotal_containing(self, col: int) -> Optional[int]:
        for i in self.subtotal_cols:
            start, end = self.columns[i].subtotal_range
            if start <= col <= end:
                return i
        return None

    def fixed_columns(self) -> list[FixedColumn]:
        return [
            FixedColumn(c.label, c.input_type, c.width)
            for c in self.columns
            if c.role is not None
        ]

    @property
    def sheet_id(self) -> str:
        return sheet_id(self.fmt, self.year, self.month)


def sheet_id(fmt: LedgerFormat | str, year: int, month: int) -> str:
    """``month`` is 0-based; the id carries it 1-based."""
    fmt = LedgerFormat(fmt)
    return f"{fmt.account_type}-{year}-{month + 1}"


def _fixed_specs(fixed: Sequence[FixedColumn]) -> list[ColumnSpec]:
    out = []
    for role, col in zip(FIXED_ROLES, fixed):
        kind = ColumnKind.BALANCE if role == "balance" else ColumnKind.FIXED
        input_type = "numeric" if kind is ColumnKind.BALANCE else col.type
        out.append(ColumnSpec(kind, col.title, role=role, input_type=input_type, width=col.width))
    return out


def _choose_fixed(fmt: LedgerFormat, shared) -> Sequence[FixedColumn]:
    if shared is None:
        return DEFAULT_FIXED_COLUMNS[fmt]
    if getattr(shared.format, "value", shared.format) != fmt.value:
        log.debug("Ignoring shared layout tagged %s for %s sheet", shared.format, fmt.value)
        return DEFAULT_FIXED_COLUMNS[fmt]
    cols = [FixedColumn(c.title, c.type, c.width) for c in shared.fixed_cols]
    if len(cols) != FIXED_COLUMN_COUNT:
        log.warning(
            "Shared %s layout has %d fixed columns, expected %d; using defaults",
            fmt.value,
            len(cols),
            FIXED_COLUMN_COUNT,
        )
        return DEFAULT_FIXED_COLUMNS[fmt]
    return cols


def build_layout(fmt: LedgerFormat | str, year: int, month: int, shared=None, width: int = GRID_COLS) -> Layout:
    """Build the column schema for ``month`` (0-based) of ``year``.

    ``shared`` is an optional ``ColumnConfig`` whose fixed column labels
    replace the defaults when it is tagged with the same format. Weekly
    sheets get a subtotal after every 7th day; leftover days at the end of
    the month have no subtotal.
    """
    fmt = LedgerFormat(fmt)
    if not 0 <= month <= 11:
        raise ValueError(f"month must be 0-11, got {month}")
    days = calendar.monthrange(year, month + 1)[1]

    columns = _fixed_specs(_choose_fixed(fmt, shared))
    week_start = len(columns)
    for day in range(days):
        columns.append(
            ColumnSpec(ColumnKind.PERIOD, f"{day + 1:02d}/{month + 1:02d}", period_index=day, input_type="numeric")
        )
        if fmt is LedgerFormat.WEEKLY and (day + 1) % DAYS_PER_SUBTOTAL == 0:
            columns.append(
                ColumnSpec(
                    ColumnKind.SUBTOTAL,
                    f"Total wk {(day + 1) // DAYS_PER_SUBTOTAL}",
                    subtotal_range=(week_start, week_start + DAYS_PER_SUBTOTAL - 1),
                    input_type="numeric",
                    width=110,
                )
            )
            week_start = len(columns)

    while len(columns) < width:
        columns.append(ColumnSpec(ColumnKind.FILLER, f"Col {len(columns) + 1}"))
    del columns[width:]

    log.debug("Built %s layout for %d-%02d: %d columns", fmt.value, year, month + 1, len(columns))
    return Layout(fmt, year, month, tuple(columns), days)
