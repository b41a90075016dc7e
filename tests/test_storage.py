"""
Tests for storage backends and atomic units
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone

from bank_ledger.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


def make_record(record_id: str, **fields):
    now = datetime.now(timezone.utc).isoformat()
    data = {"id": record_id, "created_at": now, "updated_at": now}
    data.update(fields)
    return data


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each test runs against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
        yield backend
        backend.close()
    else:
        with tempfile.TemporaryDirectory() as tmp:
            backend = SQLiteStorage(os.path.join(tmp, "ledger.db"))
            yield backend
            backend.close()


class TestBasicOperations:
    """CRUD behaviour shared by every backend"""

    def test_save_and_load(self, storage):
        record = make_record("rec_1", amount="100.50")
        storage.save("items", "rec_1", record)
        assert storage.load("items", "rec_1") == record
        assert storage.load("items", "missing") is None

    def test_loaded_copies_are_independent(self, storage):
        storage.save("items", "rec_1", make_record("rec_1", amount="1.00"))
        loaded = storage.load("items", "rec_1")
        loaded["amount"] = "999.00"
        assert storage.load("items", "rec_1")["amount"] == "1.00"

    def test_exists_find_count_delete(self, storage):
        storage.save("items", "a", make_record("a", kind="x"))
        storage.save("items", "b", make_record("b", kind="y"))
        storage.save("items", "c", make_record("c", kind="x"))

        assert storage.exists("items", "a")
        assert not storage.exists("items", "z")
        assert {r["id"] for r in storage.find("items", {"kind": "x"})} == {"a", "c"}
        assert storage.count("items") == 3

        assert storage.delete("items", "a")
        assert not storage.delete("items", "a")
        assert storage.count("items") == 2

        storage.clear_table("items")
        assert storage.count("items") == 0
        assert storage.load_all("items") == []

    def test_save_replaces_existing(self, storage):
        storage.save("items", "a", make_record("a", kind="x"))
        storage.save("items", "a", make_record("a", kind="y"))
        assert storage.count("items") == 1
        assert storage.load("items", "a")["kind"] == "y"


class TestAtomic:
    """All-or-nothing units of work"""

    def test_commit_keeps_every_write(self, storage):
        with storage.atomic():
            storage.save("items", "a", make_record("a"))
            storage.save("other", "b", make_record("b"))
        assert storage.exists("items", "a")
        assert storage.exists("other", "b")
        assert not storage.in_atomic

    def test_exception_discards_every_write(self, storage):
        storage.save("items", "keep", make_record("keep", value="before"))

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("items", "keep", make_record("keep", value="after"))
                storage.save("items", "new", make_record("new"))
                storage.delete("items", "keep")
                raise RuntimeError("boom")

        assert storage.load("items", "keep")["value"] == "before"
        assert not storage.exists("items", "new")
        assert not storage.in_atomic

    def test_nested_units_join_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("items", "inner", make_record("inner"))
                assert storage.in_atomic
                raise RuntimeError("outer fails")

        assert not storage.exists("items", "inner")

    def test_usable_after_rollback(self, storage):
        with pytest.raises(ValueError):
            with storage.atomic():
                storage.save("fresh", "a", make_record("a"))
                raise ValueError("boom")

        storage.save("fresh", "b", make_record("b"))
        assert storage.count("fresh") == 1


class TestSQLitePersistence:
    """Data survives reopening the database file"""

    def test_reopen(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ledger.db")
            first = SQLiteStorage(path)
            first.save("items", "a", make_record("a", amount="12.34"))
            first.close()

            second = SQLiteStorage(path)
            assert second.load("items", "a")["amount"] == "12.34"
            second.close()


class TestCreateStorage:

    def test_memory_backend(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)

    def test_sqlite_backend(self):
        with tempfile.TemporaryDirectory() as tmp:
            backend = create_storage("sqlite", os.path.join(tmp, "x.db"))
            assert isinstance(backend, SQLiteStorage)
            assert isinstance(backend, StorageInterface)
            backend.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage("postgres")
