import tempfile
import unittest
from pathlib import Path

from ledgergrid.models import ColumnConfig, FixedColumnConfig, RowDocument, SheetMeta
from ledgergrid.store import (
    DocumentSheetBackend,
    LocalSheetBackend,
    MemoryDocumentStore,
    PersistenceError,
    SqliteDocumentStore,
    column_config_path,
    row_path,
    rows_collection,
    sheet_path,
)


def meta(**kw):
    base = {"year": 2025, "month": 0, "rows": 300, "cols": 50, "format": "weekly"}
    base.update(kw)
    return SheetMeta(**base)


class DocumentStoreContract:
    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_get_missing(self):
        self.assertIsNone(self.store.get_document("users/a/sheets/x"))

    def test_set_and_get(self):
        self.store.set_document("users/a/sheets/x", {"year": 2025, "rows": 300})
        self.assertEqual(self.store.get_document("users/a/sheets/x"), {"year": 2025, "rows": 300})

    def test_merge(self):
        self.store.set_document("p/doc", {"a": 1, "b": 2})
        self.store.set_document("p/doc", {"b": 3}, merge=True)
        self.assertEqual(self.store.get_document("p/doc"), {"a": 1, "b": 3})
        self.store.set_document("p/doc", {"c": 4})
        self.assertEqual(self.store.get_document("p/doc"), {"c": 4})

    def test_list_direct_children_only(self):
        self.store.set_document("s/accounts/row_1", {"rowIndex": 1})
        self.store.set_document("s/accounts/row_0", {"rowIndex": 0})
        self.store.set_document("s/accounts/row_0/nested/x", {"nested": True})
        self.store.set_document("s/other/row_9", {"rowIndex": 9})
        docs = self.store.list_documents("s/accounts")
        self.assertEqual(sorted(d["rowIndex"] for d in docs), [0, 1])

    def test_delete(self):
        self.store.set_document("p/doc", {"a": 1})
        self.store.delete_document("p/doc")
        self.store.delete_document("p/missing")
        self.assertIsNone(self.store.get_document("p/doc"))

    def test_set_many(self):
        self.store.set_many([("c/one", {"n": 1}), ("c/two", {"n": 2})])
        self.assertEqual(len(self.store.list_documents("c")), 2)


class MemoryDocumentStoreTests(DocumentStoreContract, unittest.TestCase):
    def make_store(self):
        return MemoryDocumentStore()

    def test_documents_are_copied(self):
        doc = {"data": [1, 2]}
        self.store.set_document("p/doc", doc)
        doc["data"].append(3)
        self.assertEqual(self.store.get_document("p/doc"), {"data": [1, 2]})


class SqliteDocumentStoreTests(DocumentStoreContract, unittest.TestCase):
    def make_store(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        return SqliteDocumentStore(Path(self.tmp.name) / "nested" / "docs.db")

    def test_persists_across_instances(self):
        self.store.set_document("p/doc", {"a": "ü"})
        again = SqliteDocumentStore(self.store.path)
        self.assertEqual(again.get_document("p/doc"), {"a": "ü"})


class PathTests(unittest.TestCase):
    def test_paths(self):
        self.assertEqual(sheet_path("u1", "weekline-2025-1"), "users/u1/sheets/weekline-2025-1")
        self.assertEqual(rows_collection("u1", "s"), "users/u1/sheets/s/accounts")
        self.assertEqual(row_path("u1", "s", 12), "users/u1/sheets/s/accounts/row_12")
        self.assertEqual(column_config_path("daily"), "primaryAccounts/daily/settings/columnConfig")


class DocumentSheetBackendTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        self.backend = DocumentSheetBackend(self.store, "u1")

    def test_requires_identity(self):
        with self.assertRaises(ValueError):
            DocumentSheetBackend(self.store, "")

    def test_save_writes_one_document_per_row(self):
        self.backend.save_sheet("weekline-2025-1", meta(), {0: ["Asha", 1], 7: ["Ravi"]})
        doc = self.store.get_document(row_path("u1", "weekline-2025-1", 7))
        self.assertEqual(doc["rowIndex"], 7)
        self.assertEqual(doc["data"], ["Ravi"])
        self.assertIn("updatedAt", doc)
        self.assertEqual(len(self.store.list_documents(rows_collection("u1", "weekline-2025-1"))), 2)
        head = self.store.get_document(sheet_path("u1", "weekline-2025-1"))
        self.assertEqual(head["format"], "weekly")
        self.assertEqual(head["cols"], 50)

    def test_removed_rows_are_deleted(self):
        self.backend.save_sheet("s", meta(), {0: ["a"], 1: ["b"]})
        self.backend.save_sheet("s", meta(), {0: ["a"]}, removed=[1])
        self.assertIsNone(self.store.get_document(row_path("u1", "s", 1)))
        self.assertIsNotNone(self.store.get_document(row_path("u1", "s", 0)))

    def test_load_round_trip(self):
        self.backend.save_sheet("s", meta(), {3: ["x", 10, ""], 250: [1.5]})
        loaded = self.backend.load_sheet("s")
        self.assertEqual(loaded.meta.year, 2025)
        self.assertEqual(loaded.rows, {3: ["x", 10, ""], 250: [1.5]})

    def test_load_missing_sheet(self):
        loaded = self.backend.load_sheet("nothing")
        self.assertIsNone(loaded.meta)
        self.assertEqual(loaded.rows, {})

    def test_load_skips_malformed_rows(self):
        coll = rows_collection("u1", "s")
        self.store.set_document(f"{coll}/row_0", {"rowIndex": 0, "data": ["ok", None]})
        self.store.set_document(f"{coll}/row_1", {"data": ["no index"]})
        self.store.set_document(f"{coll}/row_2", {"rowIndex": -2, "data": []})
        loaded = self.backend.load_sheet("s")
        self.assertEqual(loaded.rows, {0: ["ok", ""]})

    def test_rows_are_isolated_per_identity(self):
        other = DocumentSheetBackend(self.store, "u2")
        self.backend.save_sheet("s", meta(), {0: ["mine"]})
        self.assertEqual(other.load_sheet("s").rows, {})

    def test_shared_layout(self):
        self.assertIsNone(self.backend.load_shared_layout("weekly"))
        config = ColumnConfig(
            fixed_cols=[FixedColumnConfig(title=f"F{i}") for i in range(9)],
            format="weekly",
            updated_by="u1",
        )
        self.backend.publish_shared_layout(config)
        doc = self.store.get_document(column_config_path("weekly"))
        self.assertEqual(doc["updatedBy"], "u1")
        self.assertEqual(len(doc["fixedCols"]), 9)
        read = DocumentSheetBackend(self.store, "someone-else").load_shared_layout("weekly")
        self.assertEqual(read.fixed_cols[0].title, "F0")


class LocalSheetBackendTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.backend = LocalSheetBackend(Path(self.tmp.name) / "sheets")

    def test_round_trip_as_single_blob(self):
        self.backend.save_sheet("dailyline-2024-9", meta(format="daily"), {2: ["x", 5]})
        files = list((Path(self.tmp.name) / "sheets").iterdir())
        self.assertEqual([f.name for f in files], ["dailyline-2024-9.json"])
        loaded = self.backend.load_sheet("dailyline-2024-9")
        self.assertEqual(loaded.meta.format, "daily")
        self.assertEqual(loaded.rows, {2: ["x", 5]})

    def test_missing_file(self):
        self.assertEqual(self.backend.load_sheet("nope").rows, {})

    def test_corrupt_file(self):
        path = Path(self.tmp.name) / "sheets"
        path.mkdir()
        (path / "bad.json").write_text("{not json", encoding="utf-8")
        with self.assertRaises(PersistenceError):
            self.backend.load_sheet("bad")


class ModelTests(unittest.TestCase):
    def test_row_document_aliases(self):
        doc = RowDocument(row_index=4, data=[1, "-", None]).to_document()
        self.assertEqual(doc["rowIndex"], 4)
        self.assertEqual(doc["data"], [1, "-", ""])
        self.assertEqual(RowDocument.model_validate(doc).row_index, 4)


if __name__ == "__main__":
    unittest.main()
