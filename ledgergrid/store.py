"""Document stores and the sheet backends built on them.

``DocumentStore`` is the remote per-path document database seen by the
ledger: get, set (optionally merging) and list the documents of one
collection. Sheets are written to it one account row per document.
``LocalSheetBackend`` is the single-blob local fallback.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Iterable, Optional

from pydantic import ValidationError

from .core import is_blank
from .logging_setup import get_logger
from .models import ColumnConfig, LocalSheetBlob, RowDocument, SheetMeta

log = get_logger("ledgergrid.store")


class PersistenceError(RuntimeError):
    pass


def _parent(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


class DocumentStore(ABC):
    @abstractmethod
    def get_document(self, path: str) -> Optional[dict]:
        """Return the document at ``path`` or ``None`` when it does not exist."""

    @abstractmethod
    def set_document(self, path: str, document: dict, merge: bool = False) -> None:
        ...

    @abstractmethod
    def list_documents(self, collection: str) -> list[dict]:
        """Documents directly inside ``collection``, in path order."""

    @abstractmethod
    def delete_document(self, path: str) -> None:
        ...

    def set_many(self, items: Iterable[tuple[str, dict]], merge: bool = False) -> None:
        for path, document in items:
            self.set_document(path, document, merge=merge)


class MemoryDocumentStore(DocumentStore):
    def __init__(self):
        self.documents: dict[str, dict] = {}
        self._lock = threading.Lock()

    def get_document(self, path):
        with self._lock:
            doc = self.documents.get(path)
            return json.loads(json.dumps(doc)) if doc is not None else None

    def set_document(self, path, document, merge=False):
        payload = json.loads(json.dumps(document))
        with self._lock:
            if merge and path in self.documents:
                self.documents[path].update(payload)
            else:
                self.documents[path] = payload

    def list_documents(self, collection):
        with self._lock:
            paths = sorted(p for p in self.documents if _parent(p) == collection)
            return [json.loads(json.dumps(self.documents[p])) for p in paths]

    def delete_document(self, path):
        with self._lock:
            self.documents.pop(path, None)


class SqliteDocumentStore(DocumentStore):
    """Documents as JSON text in one sqlite table keyed by path."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.db_conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS documents_collection ON documents(collection)")

    @contextmanager
    def db_conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    @staticmethod
    def _decode(raw: str, path: str) -> dict:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"corrupt document at {path}: {exc}") from exc

    def _write(self, conn: sqlite3.Connection, path: str, document: dict, merge: bool) -> None:
        if merge:
            row = conn.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
            if row:
                current = self._decode(row["data"], path)
                current.update(document)
                document = current
        conn.execute(
            """
            INSERT INTO documents (path, collection, data, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(path) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """,
            (path, _parent(path), json.dumps(document, ensure_ascii=False)),
        )

    def get_document(self, path):
        with self.db_conn() as conn:
            row = conn.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
        return self._decode(row["data"], path) if row else None

    def set_document(self, path, document, merge=False):
        with self.db_conn() as conn:
            self._write(conn, path, document, merge)

    def set_many(self, items, merge=False):
        with self.db_conn() as conn:
            for path, document in items:
                self._write(conn, path, document, merge)

    def list_documents(self, collection):
        with self.db_conn() as conn:
            rows = conn.execute(
                "SELECT path, data FROM documents WHERE collection = ? ORDER BY path ASC", (collection,)
            ).fetchall()
        return [self._decode(r["data"], r["path"]) for r in rows]

    def delete_document(self, path):
        with self.db_conn() as conn:
            conn.execute("DELETE FROM documents WHERE path = ?", (path,))


def sheet_path(identity: str, sheet_id: str) -> str:
    return f"users/{identity}/sheets/{sheet_id}"


def rows_collection(identity: str, sheet_id: str) -> str:
    return f"{sheet_path(identity, sheet_id)}/accounts"


def row_path(identity: str, sheet_id: str, row: int) -> str:
    return f"{rows_collection(identity, sheet_id)}/row_{row}"


def column_config_path(fmt: str) -> str:
    return f"primaryAccounts/{fmt}/settings/columnConfig"


@dataclass
class LoadedSheet:
    meta: Optional[SheetMeta] = None
    rows: dict[int, list] = field(default_factory=dict)


class SheetBackend(ABC):
    label = "storage"

    @abstractmethod
    def load_sheet(self, sheet_id: str) -> LoadedSheet:
        ...

    @abstractmethod
    def save_sheet(self, sheet_id: str, meta: SheetMeta, rows: dict[int, list], removed: Iterable[int] = ()) -> None:
        """Persist ``rows`` (non-empty rows by index); ``removed`` rows became empty."""

    def load_shared_layout(self, fmt: str) -> Optional[ColumnConfig]:
        return None

    def publish_shared_layout(self, config: ColumnConfig) -> None:
        log.debug("%s backend does not share layouts", self.label)


class DocumentSheetBackend(SheetBackend):
    """One metadata document plus one document per non-empty account row."""

    label = "documents"

    def __init__(self, store: DocumentStore, identity: str):
        if not identity:
            raise ValueError("identity is required")
        self.store = store
        self.identity = identity

    def load_sheet(self, sheet_id):
        meta_doc = self.store.get_document(sheet_path(self.identity, sheet_id))
        meta = None
        if meta_doc:
            try:
                meta = SheetMeta.model_validate(meta_doc)
            except ValidationError as exc:
                log.warning("Ignoring malformed metadata for %s: %s", sheet_id, exc)

        rows = {}
        for doc in self.store.list_documents(rows_collection(self.identity, sheet_id)):
            try:
                row_doc = RowDocument.model_validate(doc)
            except ValidationError as exc:
                log.warning("Skipping malformed row document in %s: %s", sheet_id, exc)
                continue
            rows[row_doc.row_index] = row_doc.data
        return LoadedSheet(meta, rows)

    def save_sheet(self, sheet_id, meta, rows, removed=()):
        now = meta.updated_at
        self.store.set_many(
            (row_path(self.identity, sheet_id, r), RowDocument(row_index=r, data=data, updated_at=now).to_document())
            for r, data in sorted(rows.items())
        )
        for r in removed:
            self.store.delete_document(row_path(self.identity, sheet_id, r))
        self.store.set_document(sheet_path(self.identity, sheet_id), meta.to_document(), merge=True)

    def load_shared_layout(self, fmt):
        doc = self.store.get_document(column_config_path(fmt))
        if not doc:
            return None
        try:
            return ColumnConfig.model_validate(doc)
        except ValidationError as exc:
            log.warning("Ignoring malformed shared layout for %s: %s", fmt, exc)
            return None

    def publish_shared_layout(self, config):
        self.store.set_document(column_config_path(config.format), config.to_document(), merge=True)


class LocalSheetBackend(SheetBackend):
    """Whole sheet as one JSON blob per sheet id; no row isolation."""

    label = "local"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _file(self, sheet_id: str) -> Path:
        return self.directory / f"{sheet_id}.json"

    def load_sheet(self, sheet_id):
        path = self._file(sheet_id)
        if not path.exists():
            return LoadedSheet()
        try:
            blob = LocalSheetBlob.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise PersistenceError(f"cannot read {path}: {exc}") from exc
        rows = {i: r for i, r in enumerate(blob.rows) if any(not is_blank(v) for v in r)}
        return LoadedSheet(blob.meta, rows)

    def save_sheet(self, sheet_id, meta, rows, removed=()):
        dense = [rows.get(i, []) for i in range(meta.rows)]
        payload = LocalSheetBlob(meta=meta, rows=dense).model_dump_json(by_alias=True)
        path = self._file(sheet_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise PersistenceError(f"cannot write {path}: {exc}") from exc
