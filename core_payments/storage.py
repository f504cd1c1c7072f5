"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). All monetary values stored as integer minor units.

Both backends implement `atomic()` as a real all-or-nothing unit: writes made
inside the block become visible together on commit or not at all.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Set, Tuple, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict, field
from pathlib import Path
from contextlib import contextmanager


class DuplicateRecordError(Exception):
    """Raised by insert() when the record id already exists in the table"""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Record {record_id} already exists in {table}")


@dataclass
class StorageRecord:
    """Base class for stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != value:
            return False
    return True


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save (insert or replace) a record"""
        pass

    @abstractmethod
    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a new record, raising DuplicateRecordError if the id exists"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()


_DELETED = object()


@dataclass
class _PendingTransaction:
    """Writes staged by one thread inside an atomic() block"""
    writes: Dict[Tuple[str, str], Any] = field(default_factory=dict)
    inserts: Set[Tuple[str, str]] = field(default_factory=set)
    depth: int = 1


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    Writes inside atomic() are staged per thread and applied under the
    storage lock at commit. Insert uniqueness is re-checked at commit; a
    collision there discards the whole unit.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    @staticmethod
    def _copy(data: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    def _pending(self) -> Optional[_PendingTransaction]:
        return getattr(self._local, "pending", None)

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        if table not in self._data:
            self._data[table] = {}
        return self._data[table]

    def _overlay(self, table: str) -> Dict[str, Dict[str, Any]]:
        """Committed rows of a table with this thread's staged writes applied"""
        with self._lock:
            rows = {rid: self._copy(row) for rid, row in self._table(table).items()}

        pending = self._pending()
        if pending:
            for (t, rid), value in pending.writes.items():
                if t != table:
                    continue
                if value is _DELETED:
                    rows.pop(rid, None)
                else:
                    rows[rid] = self._copy(value)
        return rows

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        copy = self._copy(data)
        pending = self._pending()
        if pending:
            pending.writes[(table, record_id)] = copy
            return

        with self._lock:
            self._table(table)[record_id] = copy

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a record, failing if the id is already taken"""
        copy = self._copy(data)
        pending = self._pending()
        if pending:
            if self.exists(table, record_id):
                raise DuplicateRecordError(table, record_id)
            pending.writes[(table, record_id)] = copy
            pending.inserts.add((table, record_id))
            return

        with self._lock:
            rows = self._table(table)
            if record_id in rows:
                raise DuplicateRecordError(table, record_id)
            rows[record_id] = copy

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        pending = self._pending()
        if pending and (table, record_id) in pending.writes:
            value = pending.writes[(table, record_id)]
            return None if value is _DELETED else self._copy(value)

        with self._lock:
            record = self._table(table).get(record_id)
            if record:
                return self._copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        return list(self._overlay(table).values())

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        pending = self._pending()
        if pending:
            existed = self.exists(table, record_id)
            pending.writes[(table, record_id)] = _DELETED
            return existed

        with self._lock:
            rows = self._table(table)
            if record_id in rows:
                del rows[record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pending = self._pending()
        if pending and (table, record_id) in pending.writes:
            return pending.writes[(table, record_id)] is not _DELETED

        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        return [row for row in self._overlay(table).values() if _matches(row, filters)]

    def count(self, table: str) -> int:
        """Count records in table"""
        return len(self._overlay(table))

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        """Start staging writes for the current thread"""
        pending = self._pending()
        if pending:
            pending.depth += 1
        else:
            self._local.pending = _PendingTransaction()

    def commit(self) -> None:
        """Apply staged writes atomically once the outermost block completes"""
        pending = self._pending()
        if not pending:
            return

        pending.depth -= 1
        if pending.depth > 0:
            return

        self._local.pending = None
        with self._lock:
            for table, record_id in pending.inserts:
                if record_id in self._table(table):
                    raise DuplicateRecordError(table, record_id)

            for (table, record_id), value in pending.writes.items():
                rows = self._table(table)
                if value is _DELETED:
                    rows.pop(record_id, None)
                else:
                    rows[record_id] = value

    def rollback(self) -> None:
        """Discard every write staged by the current thread"""
        self._local.pending = None


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        self.db_path = str(db_path)
        # Busy timeout bounds every wait on the database file lock
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False,
            isolation_level='DEFERRED', timeout=timeout
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._tables: Set[str] = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return

        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            if not self._in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def _autocommit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))
            self._autocommit()

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert a record relying on the primary key for uniqueness"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            try:
                self._connection.execute(f"""
                    INSERT INTO {table} (id, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (record_id, json.dumps(data, default=str), now, now))
            except sqlite3.IntegrityError:
                raise DuplicateRecordError(table, record_id)
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
            self._autocommit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        return [row for row in self.load_all(table) if _matches(row, filters)]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    @contextmanager
    def atomic(self):
        """
        Run the block as one SQLite transaction.

        Holds the connection lock for the whole block. Nested calls join the
        outer transaction.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._in_transaction = True
            try:
                yield
            except BaseException:
                self._connection.rollback()
                # Tables created inside the unit are gone after rollback
                self._tables.clear()
                raise
            else:
                self._connection.commit()
            finally:
                self._in_transaction = False

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str, db_path: Union[str, Path] = ":memory:",
                   timeout: float = 5.0) -> StorageInterface:
    """Build a storage backend by name ("sqlite" or "memory")"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(db_path, timeout=timeout)
    raise ValueError(f"Unknown storage backend: {backend}")
