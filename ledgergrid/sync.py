"""Debounced persistence of a ledger grid.

Edits call ``notify_dirty``; the sheet is flushed once the edits pause for
``delay`` seconds. A flush snapshots the whole grid, so overlapping flushes
are harmless: a later snapshot always holds at least as much as an earlier
one. Failed debounced flushes are retried with exponential backoff.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from .core import is_blank
from .grid import GridModel
from .layout import Layout
from .logging_setup import get_logger
from .models import ColumnConfig, FixedColumnConfig, SheetMeta
from .settings import DEBOUNCE_SECONDS, RETRY_MAX_ATTEMPTS, RETRY_MAX_DELAY
from .store import LoadedSheet, PersistenceError, SheetBackend

log = get_logger("ledgergrid.sync")


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, fn: Callable[[], None]):
        """Run ``fn`` after ``delay`` seconds; return a handle with ``cancel()``."""


class ThreadingScheduler(Scheduler):
    def call_later(self, delay, fn):
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer


class SyncState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FLUSHING = "flushing"


class PersistenceSync:
    def __init__(
        self,
        backend: SheetBackend,
        grid: GridModel,
        layout: Layout,
        *,
        identity: Optional[str] = None,
        primary_identity: Optional[str] = None,
        scheduler: Optional[Scheduler] = None,
        delay: float = DEBOUNCE_SECONDS,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.backend = backend
        self.grid = grid
        self.layout = layout
        self.identity = identity
        self.primary_identity = primary_identity
        self.scheduler = scheduler or ThreadingScheduler()
        self.delay = delay
        self.max_attempts = max_attempts
        self.on_status = on_status

        self.state = SyncState.IDLE
        self.status = "Ready"
        self.dirty = False
        self.flush_count = 0
        self.attempts = 0
        self._handle = None
        self._persisted: set[int] = set()
        self._lock = threading.RLock()

    @property
    def sheet_id(self) -> str:
        return self.layout.sheet_id

    @property
    def is_primary(self) -> bool:
        return bool(self.identity) and self.identity == self.primary_identity

    @property
    def persisted_rows(self) -> frozenset[int]:
        return frozenset(self._persisted)

    def _set_status(self, msg: str) -> None:
        self.status = msg
        if self.on_status is not None:
            self.on_status(msg)

    def _schedule(self, delay: float) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self.state = SyncState.SCHEDULED
            self._handle = self.scheduler.call_later(delay, self._on_timer)

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            if self.state is SyncState.SCHEDULED:
                self.state = SyncState.IDLE

    def notify_dirty(self) -> None:
        with self._lock:
            self.dirty = True
            self.attempts = 0
        self._schedule(self.delay)

    def _on_timer(self) -> None:
        with self._lock:
            self._handle = None
        if self.flush():
            return
        with self._lock:
            if self._handle is not None or self.attempts >= self.max_attempts:
                if self.attempts >= self.max_attempts:
                    log.error("Giving up on %s after %d retries", self.sheet_id, self.attempts)
                return
            self.attempts += 1
            backoff = min(self.delay * 2 ** self.attempts, RETRY_MAX_DELAY)
        log.warning("Retrying save of %s in %.1fs (attempt %d)", self.sheet_id, backoff, self.attempts)
        self._set_status(f"{self.status} (retrying in {backoff:.0f}s)")
        self._schedule(backoff)

    def _shared_layout(self) -> ColumnConfig:
        return ColumnConfig(
            fixed_cols=[FixedColumnConfig(title=c.title, type=c.type, width=c.width) for c in self.layout.fixed_columns()],
            format=self.layout.fmt.value,
            updated_by=self.identity,
        )

    def flush(self) -> bool:
        """Write the current grid to the backend. Returns ``False`` on failure."""
        with self._lock:
            self.state = SyncState.FLUSHING
            self.dirty = False
        rows = self.grid.snapshot_all_rows()
        non_empty = {i: r for i, r in enumerate(rows) if any(not is_blank(v) for v in r)}
        removed = sorted(self._persisted - set(non_empty))
        meta = SheetMeta(
            year=self.layout.year,
            month=self.layout.month,
            rows=self.grid.rows,
            cols=self.grid.cols,
            format=self.layout.fmt.value,
        )

        self._set_status("Saving...")
        try:
            self.backend.save_sheet(self.sheet_id, meta, non_empty, removed)
            if self.is_primary:
                self.backend.publish_shared_layout(self._shared_layout())
        except (PersistenceError, OSError) as exc:
            log.exception("Failed to save %s to %s", self.sheet_id, self.backend.label)
            with self._lock:
                # Row documents may have landed before the failure.
                self._persisted |= set(non_empty)
                self.dirty = True
                if self.state is SyncState.FLUSHING:
                    self.state = SyncState.IDLE
            self._set_status(f"Error: {exc}")
            return False

        with self._lock:
            self._persisted = set(non_empty)
            self.flush_count += 1
            if self.state is SyncState.FLUSHING:
                self.state = SyncState.IDLE
        log.info(
            "Saved %s: %d rows written, %d rows removed (%s)",
            self.sheet_id,
            len(non_empty),
            len(removed),
            self.backend.label,
        )
        self._set_status(f"Saved ({self.backend.label})")
        return True

    def save_now(self) -> bool:
        self.cancel()
        with self._lock:
            self.attempts = 0
        return self.flush()

    def load(self) -> Optional[LoadedSheet]:
        """Apply persisted rows onto the grid; rows never saved stay blank."""
        self._set_status("Loading...")
        try:
            loaded = self.backend.load_sheet(self.sheet_id)
        except (PersistenceError, OSError) as exc:
            log.exception("Failed to load %s from %s", self.sheet_id, self.backend.label)
            self._set_status(f"Error: {exc}")
            return None

        patch = {}
        for r, data in loaded.rows.items():
            if 0 <= r < self.grid.rows:
                patch[r] = data
            else:
                log.warning("Ignoring persisted row %d of %s outside the grid", r, self.sheet_id)
        if loaded.meta is not None and loaded.meta.cols != self.grid.cols:
            log.info("%s was saved with %d columns, fitting to %d", self.sheet_id, loaded.meta.cols, self.grid.cols)
        self.grid.apply_rows(patch)

        with self._lock:
            self._persisted = set(patch)
        log.info("Loaded %s: %d rows (%s)", self.sheet_id, len(patch), self.backend.label)
        self._set_status(f"Loaded ({self.backend.label})")
        return loaded
