"""
Storage Backend Module

Provides the abstract ledger store interface and implementations for in-memory
(testing) and SQLite (persistence). All monetary values stored as Decimal strings.

Every workflow operation runs inside ``storage.atomic()``: a re-entrant,
serialized unit of work that either commits every write made inside it or
rolls all of them back.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, date
from enum import Enum
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import StorageTimeoutError


# Logical tables
ACCOUNTS_TABLE = "accounts"
LOANS_TABLE = "loans"
TRANSFERS_TABLE = "transfers"
USERS_TABLE = "users"
AUDIT_TABLE = "audit_log"
PERSON_CLIENTS_TABLE = "person_clients"
COMPANY_CLIENTS_TABLE = "company_clients"
PRODUCTS_TABLE = "bank_products"

ALL_TABLES = (
    ACCOUNTS_TABLE, LOANS_TABLE, TRANSFERS_TABLE, USERS_TABLE,
    AUDIT_TABLE, PERSON_CLIENTS_TABLE, COMPANY_CLIENTS_TABLE, PRODUCTS_TABLE
)


def to_storable(value: Any) -> Any:
    """Convert Decimals, datetimes and enums to JSON-friendly values"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storable(v) for v in value]
    return value


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp written by to_storable"""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Parse a Decimal written by to_storable"""
    if value is None:
        return None
    return Decimal(value)


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return to_storable(asdict(self))


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    def __init__(self, lock_timeout: float = 10.0):
        self.lock_timeout = lock_timeout
        self._lock = threading.RLock()
        self._depth = 0

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
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
    def last(self, table: str) -> Optional[Dict[str, Any]]:
        """Most recently inserted record of an append-only table"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def insert(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a new record, refusing to overwrite an existing one"""
        with self._lock:
            if self.exists(table, record_id):
                raise ValueError(f"Record {record_id} already exists in {table}")
            self.save(table, record_id, data)

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @property
    def in_transaction(self) -> bool:
        """True while the calling thread is inside atomic()"""
        return self._depth > 0

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic units of work

        Units are serialized against each other. A nested atomic() joins the
        enclosing unit; only the outermost one commits or rolls back.

        Raises:
            StorageTimeoutError: If the unit cannot start within lock_timeout
        """
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StorageTimeoutError(
                f"Could not start a unit of work within {self.lock_timeout}s"
            )
        try:
            outermost = self._depth == 0
            if outermost:
                self.begin_transaction()
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.rollback()
                raise
            self._depth -= 1
            if outermost:
                self.commit()
        finally:
            self._lock.release()


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self, lock_timeout: float = 10.0):
        super().__init__(lock_timeout)
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # Pre-unit copies of the tables written inside the current unit
        self._undo: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _remember(self, table: str) -> None:
        """Keep a copy of a table before its first write in a unit"""
        if self._undo is not None and table not in self._undo:
            self._undo[table] = copy.deepcopy(self._data.get(table, {}))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            self._remember(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                self._remember(table)
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(json.loads(json.dumps(record)))
            return results

    def last(self, table: str) -> Optional[Dict[str, Any]]:
        """Most recently inserted record"""
        with self._lock:
            self._ensure_table(table)
            if not self._data[table]:
                return None
            record = next(reversed(self._data[table].values()))
            return json.loads(json.dumps(record))

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._remember(table)
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        """Start recording table copies for rollback"""
        self._undo = {}

    def commit(self) -> None:
        """Drop the rollback copies"""
        self._undo = None

    def rollback(self) -> None:
        """Restore every table written since the unit started"""
        if self._undo is not None:
            for table, rows in self._undo.items():
                self._data[table] = rows
        self._undo = None


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:",
                 timeout: float = 5.0, lock_timeout: float = 10.0):
        super().__init__(lock_timeout)
        self.db_path = str(db_path)
        # Autocommit mode; atomic() issues explicit BEGIN IMMEDIATE/COMMIT
        self._connection = sqlite3.connect(
            self.db_path, timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._connection.row_factory = sqlite3.Row

        with self._lock:
            if self.db_path != ":memory:":
                # Enable WAL mode for better concurrent access
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            for table in ALL_TABLES:
                self._ensure_table(table)

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
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

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            data_json = json.dumps(data, default=str)
            created_at = data.get('created_at') or ""
            updated_at = data.get('updated_at') or created_at

            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, created_at, updated_at))

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
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
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
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(record)

            return results

    def last(self, table: str) -> Optional[Dict[str, Any]]:
        """Most recently inserted record, by rowid"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY rowid DESC LIMIT 1
            """)
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        """
        Start a write transaction, taking the database write lock up front

        Raises:
            StorageTimeoutError: If another connection keeps the write lock
                past the connection timeout
        """
        try:
            self._connection.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise StorageTimeoutError(f"Could not lock {self.db_path}: {e}") from e

    def commit(self) -> None:
        """Commit current transaction"""
        self._connection.execute("COMMIT")

    def rollback(self) -> None:
        """Rollback current transaction"""
        if self._connection.in_transaction:
            self._connection.execute("ROLLBACK")

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str, timeout: float = 5.0,
                   lock_timeout: float = 10.0) -> StorageInterface:
    """
    Build a storage backend from a database URL

    Supported forms: ``memory://``, in-memory SQLite (``sqlite://``,
    ``sqlite://:memory:`` or ``sqlite:///:memory:``) and
    ``sqlite:///path/to/file.db``.
    """
    if database_url == "memory://":
        return InMemoryStorage(lock_timeout=lock_timeout)

    if database_url in ("sqlite://", "sqlite://:memory:"):
        return SQLiteStorage(":memory:", timeout=timeout, lock_timeout=lock_timeout)

    if database_url.startswith("sqlite:///"):
        path = database_url[len("sqlite:///"):] or ":memory:"
        return SQLiteStorage(path, timeout=timeout, lock_timeout=lock_timeout)

    raise ValueError(f"Unsupported database URL: {database_url}")
