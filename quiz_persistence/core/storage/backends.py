"""Key-value storage tiers.

``MemoryStorage`` lives only as long as the process (the session tier);
``SqliteStorage`` survives restarts (the persistent tier). Both raise
:class:`StorageUnavailable` rather than backend-specific errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
import sqlite3
from threading import Lock

from quiz_persistence.constants.storage_constants import DEFAULT_SQLITE_PATH
from quiz_persistence.core.errors import QuotaExceeded, StorageUnavailable


class StorageBackend(ABC):
    """Minimal string-to-string store."""

    name: str = "storage"

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> list[str]: ...


class MemoryStorage(StorageBackend):
    """In-process store with an optional byte quota."""

    name = "session"

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes
        self._lock = Lock()
        self.disabled = False

    def get_item(self, key: str) -> str | None:
        with self._lock:
            self._ensure_enabled()
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_enabled()
            if self._quota_bytes is not None:
                used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
                if used + len(key) + len(value) > self._quota_bytes:
                    raise QuotaExceeded(f"Writing '{key}' would exceed the {self._quota_bytes} byte quota.")
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._ensure_enabled()
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            self._ensure_enabled()
            return list(self._items)

    def _ensure_enabled(self) -> None:
        if self.disabled:
            raise StorageUnavailable(f"{self.name} storage is disabled.")


_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class SqliteStorage(StorageBackend):
    """Persistent store backed by a single SQLite table."""

    name = "persistent"

    def __init__(self, db_path: str | Path = DEFAULT_SQLITE_PATH) -> None:
        self._db_path = str(db_path)
        self._lock = Lock()
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.executescript(_SCHEMA)
            conn.commit()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open storage database at {self._db_path}") from exc
        return conn

    def get_item(self, key: str) -> str | None:
        with self._lock:
            try:
                row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Read failed for '{key}'") from exc
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Write failed for '{key}'") from exc

    def remove_item(self, key: str) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Removal failed for '{key}'") from exc

    def keys(self) -> list[str]:
        with self._lock:
            try:
                rows = self._conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
            except sqlite3.Error as exc:
                raise StorageUnavailable("Key listing failed") from exc
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
