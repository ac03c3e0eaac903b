from __future__ import annotations

import os
import threading
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .layout import LedgerFormat, sheet_id
from .logging_setup import configure_logging, get_logger
from .models import CellValue
from .session import SessionController
from .settings import DB_PATH
from .store import DocumentSheetBackend, DocumentStore, SqliteDocumentStore
from .sync import Scheduler

log = get_logger("ledgergrid.api")


class ColumnOut(BaseModel):
    index: int
    kind: str
    label: str
    read_only: bool
    input_type: str
    width: int


class SheetOut(BaseModel):
    sheet_id: str
    format: str
    year: int
    month: int
    columns: list[ColumnOut]
    rows: list[list[CellValue]]
    totals: list[CellValue]
    status: str


class CellEdit(BaseModel):
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    value: Optional[CellValue] = ""


class RowOut(BaseModel):
    row: int
    data: list[CellValue]
    totals: list[CellValue]
    status: str


class SuggestionOut(BaseModel):
    row: int
    col: int
    carry_forward: CellValue
    no_payment: str


class SuggestionApply(BaseModel):
    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    choice: str = Field(..., pattern="^(carry_forward|no_payment)$")


class RowMove(BaseModel):
    src: int = Field(..., ge=0)
    dst: int = Field(..., ge=0)


class RowClear(BaseModel):
    row: int = Field(..., ge=0)


class SessionRegistry:
    """Open sessions keyed by (identity, sheet id)."""

    def __init__(self, store: DocumentStore, scheduler_factory: Optional[Callable[[], Scheduler]] = None, primary=None):
        self.store = store
        self.scheduler_factory = scheduler_factory
        self.primary = primary
        self.sessions: dict[tuple[str, str], SessionController] = {}
        self._lock = threading.Lock()

    def get(self, identity: str, fmt: str, year: int, month: int) -> SessionController:
        try:
            ledger_fmt = LedgerFormat(fmt)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unknown format '{fmt}'") from exc
        if not 1 <= month <= 12:
            raise HTTPException(status_code=400, detail="Month must be 1-12")
        if not identity.strip():
            raise HTTPException(status_code=400, detail="Missing identity")

        key = (identity, sheet_id(ledger_fmt, year, month - 1))
        with self._lock:
            session = self.sessions.get(key)
            if session is None:
                session = SessionController(
                    ledger_fmt,
                    year,
                    month - 1,
                    identity,
                    DocumentSheetBackend(self.store, identity),
                    scheduler=self.scheduler_factory() if self.scheduler_factory else None,
                    primary=self.primary,
                )
                self.sessions[key] = session.open()
        return session

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
        log.info("Closing %d open sessions", len(sessions))
        for session in sessions:
            session.close()


def sheet_to_out(session: SessionController) -> dict:
    layout = session.layout
    return {
        "sheet_id": session.sheet_id,
        "format": layout.fmt.value,
        "year": layout.year,
        "month": layout.month + 1,
        "columns": [
            {
                "index": i,
                "kind": c.kind.value,
                "label": c.label,
                "read_only": c.read_only,
                "input_type": c.input_type,
                "width": c.width,
            }
            for i, c in enumerate(layout.columns)
        ],
        "rows": session.rows(),
        "totals": session.column_totals,
        "status": session.status,
    }


def row_to_out(session: SessionController, row: int) -> dict:
    return {
        "row": row,
        "data": session.grid.row(row),
        "totals": session.column_totals,
        "status": session.status,
    }


def create_app(
    store: Optional[DocumentStore] = None,
    scheduler_factory: Optional[Callable[[], Scheduler]] = None,
    primary: Optional[dict[str, str]] = None,
) -> FastAPI:
    registry = SessionRegistry(store or SqliteDocumentStore(DB_PATH), scheduler_factory, primary)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        registry.close_all()

    app = FastAPI(title="Ledger Grid API", version="0.1.0", lifespan=lifespan)
    app.state.registry = registry
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/sheets/{fmt}/{year}/{month}", response_model=SheetOut)
    def get_sheet(fmt: str, year: int, month: int, x_identity: str = Header("local")) -> dict:
        return sheet_to_out(registry.get(x_identity, fmt, year, month))

    @app.put("/sheets/{fmt}/{year}/{month}/cells", response_model=RowOut)
    def edit_cell(fmt: str, year: int, month: int, payload: CellEdit, x_identity: str = Header("local")) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        if not session.edit(payload.row, payload.col, payload.value):
            raise HTTPException(status_code=400, detail="Cell is read-only or outside the sheet")
        return row_to_out(session, payload.row)

    @app.get("/sheets/{fmt}/{year}/{month}/suggestions", response_model=SuggestionOut)
    def get_suggestions(fmt: str, year: int, month: int, row: int, col: int, x_identity: str = Header("local")) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        if not 0 <= row < session.grid.rows:
            raise HTTPException(status_code=400, detail="Row outside the sheet")
        found = session.suggestions(row, col)
        if found is None:
            raise HTTPException(status_code=404, detail="No suggestions for this column")
        return {"row": row, "col": col, "carry_forward": found.carry_forward, "no_payment": found.no_payment}

    @app.post("/sheets/{fmt}/{year}/{month}/suggestions/apply", response_model=RowOut)
    def apply_suggestion(
        fmt: str, year: int, month: int, payload: SuggestionApply, x_identity: str = Header("local")
    ) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        if not 0 <= payload.row < session.grid.rows:
            raise HTTPException(status_code=400, detail="Row outside the sheet")
        if not session.apply_suggestion(payload.row, payload.col, payload.choice):
            raise HTTPException(status_code=404, detail="No suggestions for this column")
        return row_to_out(session, payload.row)

    @app.post("/sheets/{fmt}/{year}/{month}/rows/move")
    def move_row(fmt: str, year: int, month: int, payload: RowMove, x_identity: str = Header("local")) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        if not session.move_row(payload.src, payload.dst):
            raise HTTPException(status_code=400, detail="Row outside the sheet")
        return {"moved": True, "status": session.status}

    @app.post("/sheets/{fmt}/{year}/{month}/rows/clear", response_model=RowOut)
    def clear_row(fmt: str, year: int, month: int, payload: RowClear, x_identity: str = Header("local")) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        if not session.clear_row(payload.row):
            raise HTTPException(status_code=400, detail="Row outside the sheet")
        return row_to_out(session, payload.row)

    @app.post("/sheets/{fmt}/{year}/{month}/save")
    def save_sheet(fmt: str, year: int, month: int, x_identity: str = Header("local")) -> dict:
        session = registry.get(x_identity, fmt, year, month)
        saved = session.save_now()
        return {"saved": saved, "status": session.status}

    return app


def main() -> None:
    import uvicorn

    configure_logging()
    host = os.getenv("LEDGERGRID_HOST", "127.0.0.1")
    port = int(os.getenv("LEDGERGRID_PORT", "8000"))
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
