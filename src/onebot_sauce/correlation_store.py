"""Persistent message-id to image-url mapping backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

KEY_PREFIX = "image_url:"


class StoreError(Exception):
    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


def correlation_key(message_id: int) -> str:
    return f"{KEY_PREFIX}{message_id}"


class CorrelationStore:
    """Key-value store of ``image_url:<message_id>`` -> image URL.

    Every ``put`` is committed immediately; ``flush`` checkpoints the
    write-ahead log so the database file alone is durable. The store
    has no eviction, entries live until the file is removed.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    def open(self) -> None:
        if self._conn is not None:
            return
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self._path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv "
                "(key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(
                f"Failed to open correlation store at {self._path}: {exc}"
            ) from exc
        self._conn = conn
        logger.info("correlation_store_opened path=%s", self._path)

    def put(self, message_id: int, image_url: str) -> None:
        key = correlation_key(message_id)
        with self._lock:
            conn = self._connection(key)
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                    (key, image_url),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to write {key}: {exc}", key=key) from exc

    def get(self, message_id: int) -> str | None:
        key = correlation_key(message_id)
        with self._lock:
            conn = self._connection(key)
            try:
                row = conn.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to read {key}: {exc}", key=key) from exc
        if row is None:
            return None
        return str(row[0])

    def flush(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.commit()
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to flush correlation store: {exc}") from exc
        logger.info("correlation_store_flushed path=%s", self._path)

    def close(self) -> None:
        self.flush()
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to close correlation store: {exc}") from exc
            finally:
                self._conn = None

    def _connection(self, key: str) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Correlation store is not open", key=key)
        return self._conn
