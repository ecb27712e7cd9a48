"""Versioned on-disk caches.

Each cache is an SQLite file holding one row per key with a JSON payload.
The format version lives in ``PRAGMA user_version``; a cache written with
another version, a missing file or an unreadable database all read as
absent, and the caller recomputes. A write replaces every row in a single
transaction, so an interrupted run leaves the previous value intact.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import closing, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

from .daycache import RETENTION_DAYS, MemoryCache, cache_from_dict, cache_to_dict
from .dependencies import DependencyCache, DependencyRecord
from .repository import Manifest, PackageId
from .types import DependencyCacheRecord, LogCacheRecord

logger = logging.getLogger("repostats")

T = TypeVar("T")

LOG_CACHE_FILE = "stats_cache.db"
LOG_CACHE_VERSION = 4
DEPENDENCY_CACHE_FILE = "dependencies_cache.db"
DEPENDENCY_CACHE_VERSION = 1

# Bytes of a log file covered by its digest
DIGEST_BYTES = 10_000

# Errors that mean "no usable cache", not a bug
_CACHE_ERRORS = (
    sqlite3.DatabaseError,  # Corrupt or non-SQLite file
    json.JSONDecodeError,  # Malformed payload
    KeyError,  # Missing expected keys
    ValueError,  # Invalid package ids or numbers
    TypeError,  # Unexpected payload structure
)

# Messages of a DatabaseError raised by a file that is not a usable database
_CORRUPTION_MESSAGES = ("file is not a database", "database disk image is malformed")


@contextmanager
def get_db(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Open a cache database, creating the table if needed."""
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS cache (key TEXT PRIMARY KEY, payload TEXT NOT NULL)"
        )
        yield conn
    finally:
        conn.close()


class CacheStore(Generic[T]):
    """A versioned key/value cache file decoded into a ``T``."""

    def __init__(
        self,
        path: str | Path,
        version: int,
        encode: Callable[[T], dict[str, Any]],
        decode: Callable[[dict[str, Any]], T],
    ) -> None:
        self.path = Path(path)
        self.version = version
        self.encode = encode
        self.decode = decode

    def read(self) -> T | None:
        """Return the cached value, or None if absent, stale or unreadable."""
        if not self.path.is_file():
            logger.debug("No cache at %s", self.path)
            return None
        try:
            with closing(sqlite3.connect(self.path)) as conn:
                (version,) = conn.execute("PRAGMA user_version").fetchone()
                if version != self.version:
                    logger.info(
                        "Ignoring cache %s (version %d, expected %d)", self.path, version, self.version
                    )
                    return None
                rows = conn.execute("SELECT key, payload FROM cache").fetchall()
            return self.decode({key: json.loads(payload) for key, payload in rows})
        except _CACHE_ERRORS as e:
            logger.warning("Ignoring unreadable cache %s: %s", self.path, e)
            return None

    def _replace_rows(self, rows: list[tuple[str, str]]) -> None:
        with get_db(self.path) as conn:
            with conn:
                conn.execute("DELETE FROM cache")
                conn.executemany("INSERT INTO cache (key, payload) VALUES (?, ?)", rows)
                # PRAGMA takes no parameters; version is an int
                conn.execute(f"PRAGMA user_version = {int(self.version)}")

    def write(self, value: T) -> None:
        """Replace the cache content with ``value``."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        rows = [(key, json.dumps(payload)) for key, payload in self.encode(value).items()]
        try:
            self._replace_rows(rows)
        except sqlite3.DatabaseError as e:
            if not any(message in str(e) for message in _CORRUPTION_MESSAGES):
                raise
            logger.warning("Replacing unreadable cache %s: %s", self.path, e)
            self.path.unlink()
            self._replace_rows(rows)
        logger.debug("Wrote %d entries to %s", len(rows), self.path)


# -----------------------------------------------------------------------------
# Log file cache
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LogCacheEntry:
    """What is known about a log file after a run.

    ``size`` is the number of bytes consumed, ``digest`` covers the first
    ``min(size, DIGEST_BYTES)`` of them, ``only_since`` is the cutoff before
    which entries were ignored and ``reference_time`` the end of the day the
    ``days`` offsets are counted from. Days at or past ``retention_days`` were
    never recorded.
    """

    size: int
    digest: str
    only_since: float
    reference_time: float
    days: MemoryCache
    retention_days: int = RETENTION_DAYS

    def to_record(self) -> LogCacheRecord:
        return {
            "size": self.size,
            "digest": self.digest,
            "only_since": self.only_since,
            "reference_time": self.reference_time,
            "days": cache_to_dict(self.days),
            "retention_days": self.retention_days,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> LogCacheEntry:
        return cls(
            size=int(record["size"]),
            digest=str(record["digest"]),
            only_since=float(record["only_since"]),
            reference_time=float(record["reference_time"]),
            days=cache_from_dict(record["days"]),
            retention_days=int(record["retention_days"]),
        )


LogCache = dict[str, LogCacheEntry]


def partial_digest(path: str | Path, size: int, limit: int = DIGEST_BYTES) -> str:
    """MD5 of the first ``min(size, limit)`` bytes of a file."""
    with open(path, "rb") as f:
        return hashlib.md5(f.read(min(size, limit))).hexdigest()


def is_valid(
    entry: LogCacheEntry,
    path: str | Path,
    only_since: float,
    limit: int = DIGEST_BYTES,
    retention_days: int = RETENTION_DAYS,
) -> bool:
    """Check that a cache entry still describes a prefix of the file.

    The file must not have shrunk and its leading bytes must be unchanged.
    The entry must not have skipped entries the current cutoff keeps, nor
    dropped days the current retention keeps.
    """
    current_size = Path(path).stat().st_size
    return (
        current_size >= entry.size
        and partial_digest(path, entry.size, limit) == entry.digest
        and entry.only_since <= only_since
        and retention_days <= entry.retention_days
    )


def log_cache_store(cache_dir: str | Path) -> CacheStore[LogCache]:
    return CacheStore(
        Path(cache_dir) / LOG_CACHE_FILE,
        LOG_CACHE_VERSION,
        encode=lambda cache: {name: entry.to_record() for name, entry in cache.items()},
        decode=lambda rows: {name: LogCacheEntry.from_record(row) for name, row in rows.items()},
    )


# -----------------------------------------------------------------------------
# Dependency cache
# -----------------------------------------------------------------------------


def _encode_dependencies(cache: DependencyCache) -> dict[str, DependencyCacheRecord]:
    return {
        str(package): {"manifest": record.manifest.to_record(), "names": sorted(record.names)}
        for package, record in cache.items()
    }


def _decode_dependencies(rows: dict[str, Any]) -> DependencyCache:
    return {
        PackageId.parse(key): DependencyRecord(
            Manifest.from_record(row["manifest"]), frozenset(row["names"])
        )
        for key, row in rows.items()
    }


def dependency_cache_store(cache_dir: str | Path) -> CacheStore[DependencyCache]:
    return CacheStore(
        Path(cache_dir) / DEPENDENCY_CACHE_FILE,
        DEPENDENCY_CACHE_VERSION,
        encode=_encode_dependencies,
        decode=_decode_dependencies,
    )
