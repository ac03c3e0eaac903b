from __future__ import annotations

import threading
from typing import Callable, Optional

from .core import Cell, is_blank, norm_spaces
from .derived import DerivedColumnEngine, compute_column_totals
from .grid import GridModel, Origin, OutOfRangeError
from .layout import Layout, LedgerFormat, build_layout
from .logging_setup import get_logger
from .settings import DEBOUNCE_SECONDS, GRID_ROWS, primary_identities
from .store import PersistenceError, SheetBackend
from .suggest import Suggestion, suggest
from .sync import PersistenceSync, Scheduler

log = get_logger("ledgergrid.session")


class SessionController:
    """One open month of one account's ledger.

    ``open`` builds the layout, loads persisted rows and fills the derived
    columns. ``edit`` is the only mutation path: every user edit or applied
    suggestion recomputes the affected row, refreshes the column totals and
    schedules a debounced save. ``close`` flushes pending edits.
    """

    def __init__(
        self,
        fmt: LedgerFormat | str,
        year: int,
        month: int,
        identity: str,
        backend: SheetBackend,
        *,
        scheduler: Optional[Scheduler] = None,
        primary: Optional[dict[str, str]] = None,
        rows: int = GRID_ROWS,
        delay: float = DEBOUNCE_SECONDS,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.fmt = LedgerFormat(fmt)
        self.year = year
        self.month = month
        self.identity = identity
        self.backend = backend
        self.scheduler = scheduler
        self.primary = primary if primary is not None else primary_identities()
        self.row_count = rows
        self.delay = delay
        self.on_status = on_status

        self.layout: Optional[Layout] = None
        self.grid: Optional[GridModel] = None
        self.engine: Optional[DerivedColumnEngine] = None
        self.sync: Optional[PersistenceSync] = None
        self.column_totals: list = []
        self.recompute_count = 0
        self._unsubscribe = None
        # API handlers run on a threadpool; every mutation holds this lock.
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self.grid is not None

    @property
    def sheet_id(self) -> str:
        return self.layout.sheet_id if self.layout else ""

    @property
    def status(self) -> str:
        return self.sync.status if self.sync else "Closed"

    def _shared_layout(self):
        try:
            return self.backend.load_shared_layout(self.fmt.value)
        except (PersistenceError, OSError):
            log.exception("Failed to read shared %s layout; using defaults", self.fmt.value)
            return None

    def open(self) -> "SessionController":
        with self._lock:
            if self.is_open:
                return self
            self.layout = build_layout(self.fmt, self.year, self.month, self._shared_layout())
            self.grid = GridModel(len(self.layout), self.row_count)
            self.engine = DerivedColumnEngine(self.grid, self.layout)
            self.sync = PersistenceSync(
                self.backend,
                self.grid,
                self.layout,
                identity=self.identity,
                primary_identity=self.primary.get(self.fmt.value),
                scheduler=self.scheduler,
                delay=self.delay,
                on_status=self.on_status,
            )
            self.sync.load()
            self.engine.recompute_all()
            self.column_totals = compute_column_totals(self.grid, self.layout)
            self._unsubscribe = self.grid.subscribe(self._on_cell_changed)
        log.info("Opened %s for %s", self.sheet_id, self.identity)
        return self

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc_info):
        self.close()

    def _require_open(self) -> None:
        if not self.is_open:
            raise RuntimeError("session is not open")

    def _has_derived(self, row: int) -> bool:
        return not is_blank(self.grid.get(row, self.layout.balance_col))

    def _on_cell_changed(self, row: int, col: int, value: Cell, origin: Origin) -> None:
        if origin in (Origin.DERIVED, Origin.LOAD) or self.engine.updating:
            return
        # Text columns only matter when they bring a blank row into use.
        if self.engine.affects(col) or self.engine.row_in_use(row) != self._has_derived(row):
            self.engine.recompute_row(row)
            self.recompute_count += 1
        self.column_totals = compute_column_totals(self.grid, self.layout)
        self.sync.notify_dirty()

    def edit(self, row: int, col: int, value, origin: Origin = Origin.USER) -> bool:
        """Write a user value. Returns ``False`` when the edit was rejected.

        Text typed into text columns has its whitespace collapsed.
        """
        with self._lock:
            self._require_open()
            if 0 <= col < len(self.layout):
                spec = self.layout[col]
                if spec.read_only:
                    log.warning("Rejected edit of derived column %d (%s)", col, spec.label)
                    return False
                if isinstance(value, str) and spec.input_type != "numeric":
                    value = norm_spaces(value)
            try:
                self.grid.set(row, col, value, origin)
            except OutOfRangeError as exc:
                log.warning("Rejected edit: %s", exc)
                return False
            return True

    def suggestions(self, row: int, col: int) -> Optional[Suggestion]:
        with self._lock:
            self._require_open()
            return suggest(self.grid, self.layout, row, col)

    def apply_suggestion(self, row: int, col: int, choice: str) -> bool:
        with self._lock:
            found = self.suggestions(row, col)
            if found is None:
                return False
            return self.edit(row, col, found.value_for(choice), Origin.SUGGESTION)

    def move_row(self, src: int, dst: int) -> bool:
        with self._lock:
            self._require_open()
            try:
                self.grid.move_row(src, dst)
            except OutOfRangeError as exc:
                log.warning("Rejected row move: %s", exc)
                return False
            if src != dst:
                self.sync.notify_dirty()
            return True

    def clear_row(self, row: int) -> bool:
        """Blank a whole account row; its document is deleted on the next save."""
        with self._lock:
            self._require_open()
            try:
                self.grid.clear_row(row)
            except OutOfRangeError as exc:
                log.warning("Rejected row clear: %s", exc)
                return False
            return True

    def rows(self) -> list[list[Cell]]:
        with self._lock:
            self._require_open()
            return self.grid.snapshot_all_rows()

    def save_now(self) -> bool:
        with self._lock:
            self._require_open()
            return self.sync.save_now()

    def close(self) -> None:
        with self._lock:
            if not self.is_open:
                return
            self.sync.cancel()
            if self.sync.dirty:
                self.sync.flush()
            if self._unsubscribe is not None:
                self._unsubscribe()
            self.grid = None
        log.info("Closed %s for %s", self.sheet_id, self.identity)
