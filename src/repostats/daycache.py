"""Per-day memory cache of classified log entries.

A ``MemoryCache`` maps "days ago" (0 = the day ending at the reference
time) to a ``DayBucket`` holding download timestamps per package and host,
index update counts per host and the set of hosts seen that day.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from .classify import ArchiveDownload, ClassifiedEntry, IndexUpdate
from .repository import PackageId
from .utils import SECONDS_PER_DAY

RETENTION_DAYS = 30


@dataclass
class DayBucket:
    """Aggregates of one day of log entries."""

    downloads: dict[PackageId, dict[str, list[float]]] = field(default_factory=dict)
    updates: dict[str, int] = field(default_factory=dict)
    hosts: set[str] = field(default_factory=set)

    def add_download(self, package: PackageId, host: str, timestamp: float) -> None:
        self.downloads.setdefault(package, {}).setdefault(host, []).append(timestamp)

    def add_update(self, host: str) -> None:
        self.updates[host] = self.updates.get(host, 0) + 1

    def merge(self, other: DayBucket) -> DayBucket:
        """Return the union of two buckets; neither input is modified."""
        downloads = {pkg: {h: list(ts) for h, ts in hosts.items()} for pkg, hosts in self.downloads.items()}
        for pkg, hosts in other.downloads.items():
            merged = downloads.setdefault(pkg, {})
            for host, timestamps in hosts.items():
                merged[host] = merged.get(host, []) + timestamps
        updates = dict(self.updates)
        for host, count in other.updates.items():
            updates[host] = updates.get(host, 0) + count
        return DayBucket(downloads=downloads, updates=updates, hosts=self.hosts | other.hosts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "downloads": {
                str(pkg): {host: sorted(ts) for host, ts in hosts.items()}
                for pkg, hosts in self.downloads.items()
            },
            "updates": dict(self.updates),
            "hosts": sorted(self.hosts),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DayBucket:
        return cls(
            downloads={
                PackageId.parse(pkg): {host: [float(t) for t in ts] for host, ts in hosts.items()}
                for pkg, hosts in data.get("downloads", {}).items()
            },
            updates={host: int(n) for host, n in data.get("updates", {}).items()},
            hosts=set(data.get("hosts", [])),
        )


MemoryCache = dict[int, DayBucket]


def day_offset(
    timestamp: float, reference_time: float, retention_days: int = RETENTION_DAYS
) -> int | None:
    """Return how many days before ``reference_time`` a timestamp falls.

    None if the timestamp is in the future or outside the retention window.
    """
    ago = reference_time - timestamp
    if ago < 0:
        return None
    day = math.floor(ago / SECONDS_PER_DAY)
    if day >= retention_days:
        return None
    return day


def add_entry(
    mcache: MemoryCache,
    entry: ClassifiedEntry,
    reference_time: float,
    retention_days: int = RETENTION_DAYS,
) -> MemoryCache:
    """Record one classified entry in its day bucket and return the cache."""
    day = day_offset(entry.timestamp, reference_time, retention_days)
    if day is None:
        return mcache

    bucket = mcache.setdefault(day, DayBucket())
    bucket.hosts.add(entry.host)
    match entry.request:
        case IndexUpdate():
            bucket.add_update(entry.host)
        case ArchiveDownload(package=package):
            bucket.add_download(package, entry.host, entry.timestamp)
    return mcache


def merge_caches(first: MemoryCache, second: MemoryCache) -> MemoryCache:
    """Pointwise union of two memory caches."""
    merged = {day: DayBucket().merge(bucket) for day, bucket in first.items()}
    for day, bucket in second.items():
        merged[day] = merged[day].merge(bucket) if day in merged else DayBucket().merge(bucket)
    return merged


def shift_cache(mcache: MemoryCache, days: int, retention_days: int = RETENTION_DAYS) -> MemoryCache:
    """Re-base a cache computed ``days`` days before the current reference.

    Buckets pushed past the retention window are dropped.
    """
    return {
        day + days: bucket
        for day, bucket in mcache.items()
        if 0 <= day + days < retention_days
    }


def cache_to_dict(mcache: MemoryCache) -> dict[str, dict[str, Any]]:
    return {str(day): bucket.to_dict() for day, bucket in sorted(mcache.items())}


def cache_from_dict(data: dict[str, dict[str, Any]]) -> MemoryCache:
    return {int(day): DayBucket.from_dict(bucket) for day, bucket in data.items()}
