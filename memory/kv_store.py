"""Expiring key/value and set storage backed by SQLite."""

import sqlite3
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional
from pydantic import BaseModel

from utils.clock import now_ms

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the storage backend cannot complete a read or write."""


class ConcurrentUpdateError(Exception):
    """Raised when a versioned write finds the key changed since it was read."""

    def __init__(self, key: str, expected_version: int, actual_version: int):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent update on {key}: expected version {expected_version}, "
            f"found {actual_version}"
        )


class KVEntry(BaseModel):
    """A stored value with its version and expiry."""
    key: str
    value: str
    version: int
    expires_at: int  # ms since epoch


class KVStore(ABC):
    """Interface of the storage collaborator."""

    @abstractmethod
    def get(self, key: str) -> Optional[KVEntry]:
        """Return the live entry for key, or None if absent or expired."""
        pass

    @abstractmethod
    def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int,
        expected_version: Optional[int] = None
    ) -> int:
        """
        Write value with an expiry.

        Args:
            key: Storage key
            value: Serialized value
            ttl_seconds: Time to live
            expected_version: If given, the write only succeeds when the live
                version equals it (0 means the key must not exist)

        Returns:
            The new version of the key

        Raises:
            ConcurrentUpdateError: If expected_version does not match
        """
        pass

    @abstractmethod
    def add_to_set(self, key: str, member: str, ttl_seconds: int):
        """Add member to the set at key and refresh the whole set's expiry."""
        pass

    @abstractmethod
    def set_members(self, key: str) -> List[str]:
        """Return the live members of the set at key."""
        pass

    @abstractmethod
    def scan_keys(self, prefix: str) -> List[str]:
        """Return live value keys starting with prefix."""
        pass


class SQLiteKVStore(KVStore):
    """SQLite implementation of the key/value store."""

    def __init__(
        self,
        db_path: str = "data/cupid.db",
        clock: Callable[[], int] = now_ms
    ):
        """
        Initialize SQLite key/value store.

        Args:
            db_path: Path to SQLite database file
            clock: Millisecond clock used for expiry
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory (autocommit mode)."""
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema and drop expired rows."""
        try:
            conn = self._get_connection()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        version INTEGER NOT NULL DEFAULT 1,
                        expires_at INTEGER NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_sets (
                        key TEXT NOT NULL,
                        member TEXT NOT NULL,
                        expires_at INTEGER NOT NULL,
                        PRIMARY KEY (key, member)
                    )
                """)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize storage at {self.db_path}: {e}") from e

        purged = self.purge_expired()
        logger.info(f"Key/value store initialized at {self.db_path} ({purged} expired rows purged)")

    def get(self, key: str) -> Optional[KVEntry]:
        """Return the live entry for key."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT key, value, version, expires_at FROM kv_entries "
                    "WHERE key = ? AND expires_at > ?",
                    (key, self.clock())
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

        if not row:
            return None

        return KVEntry(
            key=row["key"],
            value=row["value"],
            version=row["version"],
            expires_at=row["expires_at"]
        )

    def put(
        self,
        key: str,
        value: str,
        ttl_seconds: int,
        expected_version: Optional[int] = None
    ) -> int:
        """Write value, optionally as a compare-and-set on the version."""
        now = self.clock()
        expires_at = now + ttl_seconds * 1000

        try:
            conn = self._get_connection()
            try:
                # IMMEDIATE takes the write lock before the version is read
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT version, expires_at FROM kv_entries WHERE key = ?",
                    (key,)
                ).fetchone()
                current = row["version"] if row and row["expires_at"] > now else 0

                if expected_version is not None and expected_version != current:
                    conn.execute("ROLLBACK")
                    raise ConcurrentUpdateError(key, expected_version, current)

                new_version = current + 1
                conn.execute(
                    "INSERT OR REPLACE INTO kv_entries (key, value, version, expires_at) "
                    "VALUES (?, ?, ?, ?)",
                    (key, value, new_version, expires_at)
                )
                conn.execute("COMMIT")
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

        return new_version

    def add_to_set(self, key: str, member: str, ttl_seconds: int):
        """Add member and refresh the set's expiry."""
        now = self.clock()
        expires_at = now + ttl_seconds * 1000

        try:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                # An expired set starts over instead of being revived
                conn.execute(
                    "DELETE FROM kv_sets WHERE key = ? AND expires_at <= ?",
                    (key, now)
                )
                conn.execute(
                    "INSERT OR IGNORE INTO kv_sets (key, member, expires_at) VALUES (?, ?, ?)",
                    (key, member, expires_at)
                )
                conn.execute(
                    "UPDATE kv_sets SET expires_at = ? WHERE key = ?",
                    (expires_at, key)
                )
                conn.execute("COMMIT")
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add to set {key}: {e}") from e

    def set_members(self, key: str) -> List[str]:
        """Return the live members of a set, in insertion order."""
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT member FROM kv_sets WHERE key = ? AND expires_at > ? ORDER BY rowid",
                    (key, self.clock())
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read set {key}: {e}") from e

        return [row["member"] for row in rows]

    def scan_keys(self, prefix: str) -> List[str]:
        """Return live keys with the given prefix."""
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT key FROM kv_entries "
                    "WHERE substr(key, 1, ?) = ? AND expires_at > ? ORDER BY key",
                    (len(prefix), prefix, self.clock())
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to scan {prefix}*: {e}") from e

        return [row["key"] for row in rows]

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number of rows removed."""
        now = self.clock()
        try:
            conn = self._get_connection()
            try:
                removed = conn.execute(
                    "DELETE FROM kv_entries WHERE expires_at <= ?", (now,)
                ).rowcount
                removed += conn.execute(
                    "DELETE FROM kv_sets WHERE expires_at <= ?", (now,)
                ).rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to purge expired rows: {e}") from e

        return removed
