"""
CacheStore: persistent get-or-compute cache for analysis results.

Entries live in a single SQLite database and are addressed by a
``(namespace, key)`` pair. Every entry also records a validity tag (etag);
a lookup only hits when the stored etag equals the one supplied by the
caller, so changing a worker's binary version or an image's content
silently turns old entries into misses. There is no expiry.

Keys, etags and values are pickled, so any picklable domain value (numbers,
strings, nested tuples/lists/dicts, paths, dataclasses) can be stored.
"""

from __future__ import annotations

import hashlib
import logging
import pickle
import sqlite3
import threading
import zlib
from collections.abc import Callable, Hashable, Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Fixed so that keys hash identically across interpreter versions
PICKLE_PROTOCOL = 4


@dataclass
class CacheStats:
    """Hit/miss counters for one CacheStore instance."""

    hits: int = 0
    misses: int = 0
    computed: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class CacheStore:
    """SQLite-backed mapping from ``(namespace, key)`` to ``(value, etag)``.

    Safe to share between threads of one process (a per-key lock serialises
    computation of the same entry) and between processes (SQLite locking).
    Two processes computing the same entry concurrently both compute it; the
    last write wins.
    """

    def __init__(self, cache_db_path: Path, timeout: float = 30.0):
        """Initialize the cache store.

        Args:
            cache_db_path: Path to SQLite database file
            timeout: Seconds to wait for a locked database
        """
        self.cache_db_path = Path(cache_db_path)
        self.timeout = timeout
        self.stats = CacheStats()
        # Per-key locks with the number of callers holding or waiting on each
        self._locks: dict[tuple[str, str], tuple[threading.RLock, int]] = {}
        self._locks_guard = threading.Lock()
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the SQLite database schema."""
        self.cache_db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    namespace TEXT NOT NULL,
                    cache_key TEXT NOT NULL,
                    etag BLOB NOT NULL,
                    value_data BLOB NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (namespace, cache_key)
                )
            """)
            conn.commit()
        logger.debug(f"📁 Initialized cache database: {self.cache_db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self.cache_db_path, timeout=self.timeout)) as conn:
            yield conn

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _serialize(value: Any) -> bytes:
        return zlib.compress(pickle.dumps(value, protocol=PICKLE_PROTOCOL))

    @staticmethod
    def _deserialize(data: bytes) -> Any:
        return pickle.loads(zlib.decompress(data))

    @staticmethod
    def generate_cache_key(key: Hashable) -> str:
        """Return a stable text digest for an arbitrary picklable *key*."""
        return hashlib.sha256(pickle.dumps(key, protocol=PICKLE_PROTOCOL)).hexdigest()

    @contextmanager
    def _key_lock(self, namespace: str, cache_key: str) -> Iterator[None]:
        """Serialize computations of one key; the lock is dropped once unused."""
        lock_key = (namespace, cache_key)
        with self._locks_guard:
            lock, users = self._locks.get(lock_key, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[lock_key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                _, users = self._locks[lock_key]
                if users == 1:
                    del self._locks[lock_key]
                else:
                    self._locks[lock_key] = (lock, users - 1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, namespace: str, key: Hashable, etag: Any = None, default: Any = None) -> Any:
        """Return the value stored under *key* if its etag equals *etag*, else *default*."""
        cache_key = self.generate_cache_key(key)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT etag, value_data FROM cache_entries WHERE namespace = ? AND cache_key = ?",
                (namespace, cache_key),
            ).fetchone()

        if row is None:
            self.stats.misses += 1
            logger.debug(f"💾 Cache miss for {namespace}:{key}")
            return default

        stored_etag, value_data = row
        if self._deserialize(stored_etag) != etag:
            self.stats.misses += 1
            logger.debug(f"💾 Cache invalidated for {namespace}:{key} (etag changed)")
            return default

        self.stats.hits += 1
        logger.debug(f"💾 Cache hit for {namespace}:{key}")
        return self._deserialize(value_data)

    def set(self, namespace: str, key: Hashable, etag: Any, value: Any) -> None:
        """Store *value* under *key* with validity tag *etag*, replacing any entry."""
        cache_key = self.generate_cache_key(key)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries
                (namespace, cache_key, etag, value_data, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    namespace,
                    cache_key,
                    self._serialize(etag),
                    self._serialize(value),
                    datetime.now().isoformat(),
                ),
            )
            conn.commit()

    def get_or_compute(
        self,
        namespace: str,
        key: Hashable,
        etag: Any,
        compute: Callable[[], T],
    ) -> T:
        """Return the cached value for *key*/*etag* or compute, store and return it.

        *compute* runs at most once per call.
        """
        missing = object()
        with self._key_lock(namespace, self.generate_cache_key(key)):
            value = self.get(namespace, key, etag, default=missing)
            if value is not missing:
                return value

            value = compute()
            self.stats.computed += 1
            self.set(namespace, key, etag, value)
            return value

    def clear_cache(self) -> int:
        """Delete every entry; return how many were removed."""
        with self._connect() as conn:
            count = conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]
            conn.execute("DELETE FROM cache_entries")
            conn.commit()
        logger.info(f"🗑️ Cleared {count} cached results")
        return count

    def get_cache_stats(self) -> dict[str, Any]:
        """Get statistics about the current cache."""
        with self._connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()[0]
            by_namespace = dict(
                conn.execute(
                    """
                    SELECT namespace, COUNT(*) FROM cache_entries
                    GROUP BY namespace ORDER BY namespace
                    """
                ).fetchall()
            )

        db_size_bytes = self.cache_db_path.stat().st_size if self.cache_db_path.exists() else 0
        return {
            "total_entries": total,
            "entries_by_namespace": by_namespace,
            "database_size_mb": round(db_size_bytes / (1024 * 1024), 2),
            "database_path": str(self.cache_db_path),
            "hits": self.stats.hits,
            "misses": self.stats.misses,
        }
