"""Tests for the SQLAlchemy-backed document store."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from pilgrim_cms.database import SessionLocal
from pilgrim_cms.storage.sql_documents import SqlDocumentStore


@pytest.fixture()
def store():
    return SqlDocumentStore(SessionLocal)


class TestSqlDocumentStore:

    def test_set_and_get(self, store):
        store.set("demo_uploads", "1", {"name": "Mina", "images": ["u1"]})
        assert store.get("demo_uploads", "1") == {"name": "Mina", "images": ["u1"]}

    def test_missing_document_is_none(self, store):
        assert store.get("demo_uploads", "404") is None

    def test_merge_keeps_other_fields(self, store):
        store.set("demo_uploads", "1", {"name": "Mina", "status": "pending"})
        store.set("demo_uploads", "1", {"status": "complete"}, merge=True)
        assert store.get("demo_uploads", "1") == {"name": "Mina", "status": "complete"}

    def test_set_without_merge_replaces(self, store):
        store.set("demo_uploads", "1", {"name": "Mina", "order": 3})
        store.set("demo_uploads", "1", {"name": "Arafat"})
        assert store.get("demo_uploads", "1") == {"name": "Arafat"}

    def test_collections_are_separate(self, store):
        store.set("hajj_uploads", "1", {"name": "a"})
        store.set("umrah_uploads", "1", {"name": "b"})
        assert [doc_id for doc_id, _ in store.query("hajj_uploads")] == ["1"]

    def test_query_order_by_skips_records_without_the_field(self, store):
        store.set("historic_places_makkah", "1", {"order": 2})
        store.set("historic_places_makkah", "2", {"name": "no order"})
        store.set("historic_places_makkah", "3", {"order": 1})
        rows = store.query("historic_places_makkah", order_by="order")
        assert [doc_id for doc_id, _ in rows] == ["3", "1"]

    def test_query_descending(self, store):
        store.set("hajj_uploads", "1", {"timestamp": "2024-01-01T00:00:00.000Z"})
        store.set("hajj_uploads", "2", {"timestamp": "2024-02-01T00:00:00.000Z"})
        rows = store.query("hajj_uploads", order_by="timestamp", descending=True)
        assert [doc_id for doc_id, _ in rows] == ["2", "1"]

    def test_delete(self, store):
        store.set("demo_uploads", "1", {"name": "x"})
        store.delete("demo_uploads", "1")
        assert store.get("demo_uploads", "1") is None

    def test_delete_missing_is_quiet(self, store):
        store.delete("demo_uploads", "77")

    def test_increment_creates_then_counts(self, store):
        assert store.increment("_folder_counters", "hajj", "value") == 1
        assert store.increment("_folder_counters", "hajj", "value") == 2
        assert store.increment("_folder_counters", "hajj", "value", amount=5) == 7

    def test_increment_keeps_other_fields(self, store):
        store.set("_folder_counters", "umrah", {"value": 4, "prefix": "umrah"})
        assert store.increment("_folder_counters", "umrah", "value") == 5
        assert store.get("_folder_counters", "umrah") == {"value": 5, "prefix": "umrah"}

    def test_create_only_when_absent(self, store):
        assert store.create("_folder_counters", "hajj", {"value": 3}) is True
        assert store.create("_folder_counters", "hajj", {"value": 0}) is False
        assert store.get("_folder_counters", "hajj") == {"value": 3}

    def test_concurrent_increments_are_distinct(self):
        def bump(_):
            # A store per worker, sharing only the database.
            return SqlDocumentStore(SessionLocal).increment("_folder_counters", "demo", "value")

        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(bump, range(80)))

        assert sorted(values) == list(range(1, 81))
