from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

Cell = Union[str, int, float]

EMPTY = ""
NO_PAYMENT = "-"

_GROUPING = re.compile(r"[,_\s]")
_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def norm_spaces(s: str) -> str:
    s = s.replace("\u00A0", " ")
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def is_blank(cell) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    return False


def normalize_cell(cell) -> Cell:
    if cell is None:
        return EMPTY
    if isinstance(cell, Decimal):
        return number_cell(cell)
    if isinstance(cell, bool):
        return int(cell)
    return cell


def try_parse_amount(cell) -> Optional[Decimal]:
    """Parse a ledger cell the way every derived column reads it.

    Grouping separators are dropped and the leading numeric part is taken,
    so ``"1,500"`` is 1500 and ``"12abc"`` is 12. Blank cells, the
    no-payment marker and text without a leading number give ``None``.
    """
    if cell is None or isinstance(cell, bool):
        return None
    if isinstance(cell, Decimal):
        return cell
    if isinstance(cell, int):
        return Decimal(cell)
    if isinstance(cell, float):
        if cell != cell or cell in (float("inf"), float("-inf")):
            return None
        return Decimal(repr(cell))

    s = _GROUPING.sub("", str(cell))
    if not s or s == NO_PAYMENT:
        return None
    m = _LEADING_NUMBER.match(s)
    if not m:
        return None
    try:
        return Decimal(m.group(0))
    except InvalidOperation:
        return None


def parse_amount(cell) -> Decimal:
    value = try_parse_amount(cell)
    if value is None:
        return Decimal("0")
    return value


def number_cell(d: Decimal) -> Union[int, float]:
    if d == d.to_integral_value():
        return int(d)
    return float(d)


def money2(d: Decimal) -> Decimal:
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_amount(cell) -> str:
    if is_blank(cell):
        return EMPTY
    value = try_parse_amount(cell)
    if value is None:
        return str(cell)
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{money2(value):,.2f}"


def column_name(index: int) -> str:
    if index < 0:
        raise ValueError("column index must be >= 0")
    name = ""
    i = index
    while i >= 0:
        name = chr(65 + i % 26) + name
        i = i // 26 - 1
    return name
