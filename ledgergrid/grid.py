from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Iterable, Mapping, Sequence

from .core import EMPTY, Cell, is_blank, normalize_cell
from .settings import GRID_ROWS


class OutOfRangeError(IndexError):
    pass


class Origin(str, Enum):
    """Who wrote a cell. Derived and load writes never re-trigger recomputation."""

    USER = "user"
    SUGGESTION = "suggestion"
    DERIVED = "derived"
    LOAD = "load"


Listener = Callable[[int, int, Cell, Origin], None]


class GridModel:
    """Fixed-size rows x cols matrix of ledger cells kept in one flat buffer."""

    def __init__(self, cols: int, rows: int = GRID_ROWS):
        if rows <= 0 or cols <= 0:
            raise ValueError("grid dimensions must be positive")
        self._rows = rows
        self._cols = cols
        self._cells: list[Cell] = [EMPTY] * (rows * cols)
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    def _index(self, row: int, col: int) -> int:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise OutOfRangeError(f"cell ({row}, {col}) outside {self._rows}x{self._cols} grid")
        return row * self._cols + col

    def _check_row(self, row: int) -> None:
        if not 0 <= row < self._rows:
            raise OutOfRangeError(f"row {row} outside 0..{self._rows - 1}")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, row: int, col: int, value: Cell, origin: Origin) -> None:
        for listener in list(self._listeners):
            listener(row, col, value, origin)

    def get(self, row: int, col: int) -> Cell:
        return self._cells[self._index(row, col)]

    def set(self, row: int, col: int, value, origin: Origin = Origin.USER) -> None:
        idx = self._index(row, col)
        value = normalize_cell(value)
        with self._lock:
            self._cells[idx] = value
        self._notify(row, col, value, origin)

    def row(self, row: int) -> list[Cell]:
        self._check_row(row)
        start = row * self._cols
        with self._lock:
            return self._cells[start:start + self._cols]

    def snapshot_all_rows(self) -> list[list[Cell]]:
        with self._lock:
            cells = list(self._cells)
        return [cells[r * self._cols:(r + 1) * self._cols] for r in range(self._rows)]

    def is_row_empty(self, row: int) -> bool:
        return all(is_blank(v) for v in self.row(row))

    def non_empty_rows(self) -> list[int]:
        return [r for r in range(self._rows) if not self.is_row_empty(r)]

    def _fit(self, data: Sequence) -> list[Cell]:
        data = list(data or [])[:self._cols]
        return [normalize_cell(v) for v in data] + [EMPTY] * (self._cols - len(data))

    def apply_rows(self, patch: Mapping[int, Sequence] | Iterable[tuple[int, Sequence]]) -> int:
        """Write whole rows at their index; short rows are padded with blanks.

        Returns the number of rows applied. Rows outside the grid raise
        ``OutOfRangeError`` before anything is written.
        """
        items = list(patch.items()) if isinstance(patch, Mapping) else list(patch)
        for row, _ in items:
            self._check_row(row)
        with self._lock:
            for row, data in items:
                start = row * self._cols
                self._cells[start:start + self._cols] = self._fit(data)
        for row, _ in items:
            self._notify(row, -1, EMPTY, Origin.LOAD)
        return len(items)

    def clear_row(self, row: int, origin: Origin = Origin.USER) -> None:
        self._check_row(row)
        for col in range(self._cols):
            if not is_blank(self.get(row, col)):
                self.set(row, col, EMPTY, origin)

    def move_row(self, src: int, dst: int) -> None:
        """Swap two rows; the grid keeps its dimensions."""
        self._check_row(src)
        self._check_row(dst)
        if src == dst:
            return
        a, b = self.row(src), self.row(dst)
        self.apply_rows({src: b, dst: a})
