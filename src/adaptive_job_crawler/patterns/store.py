import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from adaptive_job_crawler.errors import NotFoundError
from adaptive_job_crawler.models import SitePattern
from adaptive_job_crawler.normalize import utcnow

logger = logging.getLogger(__name__)

CACHE_EXPIRY_DAYS = 30
FRESHNESS_DAYS = 7


class KeyValueStore(ABC):
    """
    Minimal key-value backend for learned patterns.
    Values are JSON-serializable dicts.
    """

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def set(self, key: str, value: dict[str, Any]) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def keys(self) -> list[str]: ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """
    One JSON file per key in a cache directory.
    Dots in the key become underscores in the file name, so
    "saramin.co.kr" is stored as "saramin_co_kr.json". The file name is not
    reversible, so each value carries its own key in `key_field`.
    """

    def __init__(
        self, cache_dir: str | Path = ".crawling-cache", key_field: str = "domain"
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.key_field = key_field

    def _ensure_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.cache_dir / (key.replace(".", "_") + ".json")

    def get(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        value = json.loads(path.read_text(encoding="utf-8"))
        # "a_b.com" and "a.b.com" share a file name
        if value.get(self.key_field, key) != key:
            return None
        return value

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._ensure_dir()
        value = {**value, self.key_field: key}
        self._path(key).write_text(
            json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self) -> list[str]:
        if not self.cache_dir.exists():
            return []
        keys = []
        for path in self.cache_dir.glob("*.json"):
            try:
                value = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable cache file {path.name}: {e}")
                continue
            if isinstance(value, dict) and value.get(self.key_field):
                keys.append(str(value[self.key_field]))
        return keys


class SqliteKeyValueStore(KeyValueStore):
    """
    SQLite-backed key-value store.
    Uses a single persistent connection and supports the context manager protocol.
    """

    def __init__(self, db_path: str = "patterns.db") -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = sqlite3.connect(db_path)
        self.init_db()

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database connection is closed")
        return self._conn

    def init_db(self) -> None:
        cursor = self.connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patterns (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.connection.commit()
        logger.info(f"Pattern database initialized at {self.db_path}")

    def get(self, key: str) -> dict[str, Any] | None:
        cursor = self.connection.cursor()
        cursor.execute("SELECT value FROM patterns WHERE key = ?", (key,))
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        cursor = self.connection.cursor()
        cursor.execute(
            """
            INSERT INTO patterns (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = CURRENT_TIMESTAMP
        """,
            (key, json.dumps(value, ensure_ascii=False)),
        )
        self.connection.commit()

    def delete(self, key: str) -> bool:
        cursor = self.connection.cursor()
        cursor.execute("DELETE FROM patterns WHERE key = ?", (key,))
        self.connection.commit()
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        cursor = self.connection.cursor()
        cursor.execute("SELECT key FROM patterns")
        return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteKeyValueStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class PatternStore:
    """
    Cache of learned site patterns keyed by domain.

    Entries older than `expiry_days` (measured from last_updated) are treated
    as absent but left on the backend. `is_fresh` uses a shorter window to
    decide when a still-valid pattern is due for re-learning. Concurrent
    writers to the same domain are not serialized: last write wins.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        expiry_days: int = CACHE_EXPIRY_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.backend = backend
        self.expiry_days = expiry_days
        self.clock = clock

    def _age(self, pattern: SitePattern) -> timedelta:
        return self.clock() - datetime.fromisoformat(pattern.last_updated)

    def save(self, pattern: SitePattern) -> None:
        self.backend.set(pattern.domain, pattern.model_dump())
        logger.info(f"Saved pattern for {pattern.domain}")

    def load(self, domain: str) -> SitePattern | None:
        """Return the cached pattern, or None if absent, unreadable or expired."""
        try:
            data = self.backend.get(domain)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read pattern for {domain}: {e}")
            return None
        if data is None:
            return None

        try:
            pattern = SitePattern.model_validate(data)
            age = self._age(pattern)
        except (ValidationError, ValueError, TypeError) as e:
            logger.error(f"Stored pattern for {domain} is malformed: {e}")
            return None

        if age > timedelta(days=self.expiry_days):
            logger.info(f"Pattern for {domain} expired ({age.days} days old)")
            return None

        logger.debug(f"Loaded cached pattern for {domain}")
        return pattern

    def delete(self, domain: str) -> bool:
        deleted = self.backend.delete(domain)
        if deleted:
            logger.info(f"Deleted pattern for {domain}")
        return deleted

    def list_domains(self) -> list[str]:
        """All stored domains, including expired entries."""
        return sorted(self.backend.keys())

    def get_all(self) -> list[SitePattern]:
        patterns = []
        for domain in self.list_domains():
            pattern = self.load(domain)
            if pattern:
                patterns.append(pattern)
        return patterns

    def clear(self) -> None:
        for domain in self.list_domains():
            self.backend.delete(domain)
        logger.info("Cleared all cached patterns")

    def update(self, domain: str, **changes: Any) -> SitePattern:
        """
        Merge changes into the stored pattern and re-save it with a new
        last_updated timestamp. Raises NotFoundError if no valid pattern exists.
        """
        pattern = self.load(domain)
        if pattern is None:
            raise NotFoundError(domain)

        merged = pattern.model_dump()
        merged.update(changes)
        merged["domain"] = domain
        merged["last_updated"] = self.clock().isoformat()
        updated = SitePattern.model_validate(merged)
        self.save(updated)
        return updated

    def is_fresh(self, domain: str, max_age_days: int = FRESHNESS_DAYS) -> bool:
        pattern = self.load(domain)
        if pattern is None:
            return False
        return self._age(pattern) <= timedelta(days=max_age_days)


def create_pattern_store(
    backend: str = "file",
    cache_dir: str = ".crawling-cache",
    db_path: str = "patterns.db",
) -> PatternStore:
    """Build a PatternStore over the configured backend."""
    if backend == "sqlite":
        return PatternStore(SqliteKeyValueStore(db_path))
    if backend == "file":
        return PatternStore(FileKeyValueStore(cache_dir))
    raise ValueError(f"Unknown pattern cache backend: {backend}")
