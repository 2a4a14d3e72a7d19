"""Persistent key-value storage for a single database server."""

import os
import shutil
import sqlite3
import threading

_DB_FILE = "data.sqlite3"


class DatabaseError(Exception):
    """Raised when a storage operation fails."""


class KeyNotFoundError(DatabaseError):
    """Raised when a key is not present in the store."""

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"key '{key}' not found")
        self.key = key


class Database:
    """A key-value store kept in a directory on disk."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)
        self._lock = threading.Lock()
        try:
            os.makedirs(self.path, exist_ok=True)
            self._conn: sqlite3.Connection | None = sqlite3.connect(
                os.path.join(self.path, _DB_FILE), check_same_thread=False
            )
            with self._conn:
                self._conn.execute(
                    "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value BLOB NOT NULL)"
                )
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseError(f"failed to open database at {self.path}: {exc}") from exc

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("database is closed")
        return self._conn

    def close(self) -> None:
        """Close the store; closing twice is harmless."""
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as exc:
                    raise DatabaseError(f"failed to close database: {exc}") from exc
                finally:
                    self._conn = None

    def cleanup(self) -> None:
        """Close the store and remove its directory."""
        try:
            self.close()
        except DatabaseError as exc:
            raise DatabaseError(f"failed to close database during cleanup: {exc}") from exc
        try:
            if os.path.exists(self.path):
                shutil.rmtree(self.path)
        except OSError as exc:
            raise DatabaseError(
                f"failed to remove database directory during cleanup: {exc}"
            ) from exc

    def get(self, key: str) -> bytes:
        """Return the value stored under ``key``."""
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise DatabaseError(f"failed to get key '{key}': {exc}") from exc
        if row is None:
            raise KeyNotFoundError(key)
        return bytes(row[0])

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any earlier value."""
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                        (key, value.encode("utf-8")),
                    )
            except sqlite3.Error as exc:
                raise DatabaseError(
                    f"failed to set key '{key}' with value '{value}': {exc}"
                ) from exc

    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key raises KeyNotFoundError."""
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            except sqlite3.Error as exc:
                raise DatabaseError(f"failed to delete key '{key}': {exc}") from exc
        if cursor.rowcount == 0:
            raise KeyNotFoundError(key, f"key '{key}' not found, cannot delete")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()