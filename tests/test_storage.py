"""
Tests for storage backends and transaction support
"""

import pytest
import threading
from datetime import datetime, timezone

from core_payments.storage import (
    InMemoryStorage, SQLiteStorage, DuplicateRecordError, create_storage
)


# Test data
test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": 10050,
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageBasics:
    """CRUD behaviour shared by every backend"""

    def test_basic_operations(self, storage):
        storage.save("test_table", "record_1", test_data)
        assert storage.load("test_table", "record_1") == test_data
        assert storage.exists("test_table", "record_1")
        assert not storage.exists("test_table", "non_existent")

        storage.save("test_table", "record_2", {"id": "record_2", "data": "test"})
        assert len(storage.load_all("test_table")) == 2
        assert storage.count("test_table") == 2

        results = storage.find("test_table", {"id": "test_001"})
        assert len(results) == 1
        assert results[0]["name"] == "Test Record"

        assert storage.delete("test_table", "record_1")
        assert not storage.delete("test_table", "record_1")
        assert storage.load("test_table", "record_1") is None

    def test_loaded_records_are_copies(self, storage):
        storage.save("t", "r", {"value": 1})
        loaded = storage.load("t", "r")
        loaded["value"] = 2
        assert storage.load("t", "r")["value"] == 1

    def test_insert_rejects_duplicate_id(self, storage):
        storage.insert("t", "r", {"value": 1})
        with pytest.raises(DuplicateRecordError):
            storage.insert("t", "r", {"value": 2})
        assert storage.load("t", "r")["value"] == 1


class TestAtomic:
    """All-or-nothing units"""

    def test_commit_applies_all_writes(self, storage):
        with storage.atomic():
            storage.save("t", "a", {"v": 1})
            storage.insert("t", "b", {"v": 2})
        assert storage.load("t", "a") == {"v": 1}
        assert storage.load("t", "b") == {"v": 2}

    def test_exception_discards_all_writes(self, storage):
        storage.save("t", "a", {"v": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("t", "a", {"v": 99})
                storage.insert("t", "b", {"v": 2})
                raise RuntimeError("boom")

        assert storage.load("t", "a") == {"v": 1}
        assert not storage.exists("t", "b")

    def test_duplicate_insert_inside_unit_rolls_back(self, storage):
        storage.insert("t", "dup", {"v": 0})

        with pytest.raises(DuplicateRecordError):
            with storage.atomic():
                storage.save("t", "other", {"v": 1})
                storage.insert("t", "dup", {"v": 2})

        assert not storage.exists("t", "other")
        assert storage.load("t", "dup") == {"v": 0}

    def test_reads_inside_unit_see_own_writes(self, storage):
        with storage.atomic():
            storage.save("t", "a", {"v": 1})
            assert storage.load("t", "a") == {"v": 1}
            assert storage.count("t") == 1

    def test_nested_units_commit_with_outermost(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("t", "inner", {"v": 1})
                raise RuntimeError("outer failure")
        assert not storage.exists("t", "inner")


class TestInMemoryIsolation:
    """Staged writes are private to the thread that made them"""

    def test_uncommitted_writes_invisible_to_other_threads(self):
        storage = InMemoryStorage()
        staged = threading.Event()
        release = threading.Event()
        seen = {}

        def writer():
            with storage.atomic():
                storage.save("t", "a", {"v": 1})
                staged.set()
                release.wait(5)

        thread = threading.Thread(target=writer)
        thread.start()
        staged.wait(5)
        seen["during"] = storage.exists("t", "a")
        release.set()
        thread.join(5)

        assert seen["during"] is False
        assert storage.exists("t", "a")

    def test_commit_time_insert_conflict_discards_unit(self):
        storage = InMemoryStorage()
        staged = threading.Event()
        release = threading.Event()
        errors = []

        def writer():
            try:
                with storage.atomic():
                    storage.save("t", "side", {"v": 1})
                    storage.insert("t", "key", {"v": "late"})
                    staged.set()
                    release.wait(5)
            except DuplicateRecordError as e:
                errors.append(e)

        thread = threading.Thread(target=writer)
        thread.start()
        staged.wait(5)
        storage.insert("t", "key", {"v": "early"})
        release.set()
        thread.join(5)

        assert len(errors) == 1
        assert storage.load("t", "key") == {"v": "early"}
        assert not storage.exists("t", "side")


class TestSQLitePersistence:

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "persist.db"
        storage = SQLiteStorage(path)
        storage.save("t", "a", {"v": 1})
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("t", "a") == {"v": 1}
        reopened.close()


def test_create_storage():
    assert isinstance(create_storage("memory"), InMemoryStorage)
    assert isinstance(create_storage("sqlite", ":memory:"), SQLiteStorage)
    with pytest.raises(ValueError):
        create_storage("postgres")
