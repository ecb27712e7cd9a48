"""Day, week and month statistics over a memory cache."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .daycache import RETENTION_DAYS, DayBucket, MemoryCache
from .leaf import BURST_GAP, Resolver, count_leaf_downloads
from .repository import PackageId

DAY_WINDOW = range(0, 1)
WEEK_WINDOW = range(0, 7)


@dataclass(frozen=True)
class Stats:
    """Download, update and user counts of one window."""

    packages: dict[PackageId, int] = field(default_factory=dict)
    downloads: int = 0
    updates: int = 0
    users: int = 0


EMPTY_STATS = Stats()


@dataclass(frozen=True)
class StatisticsSet:
    """Statistics of every window plus leaf download counts for the month."""

    day: Stats = EMPTY_STATS
    week: Stats = EMPTY_STATS
    month: Stats = EMPTY_STATS
    month_leaf: dict[PackageId, int] = field(default_factory=dict)
    hash_table: dict[str, PackageId] = field(default_factory=dict)
    shared_hashes: dict[str, list[PackageId]] = field(default_factory=dict)

    def windows(self) -> dict[str, Stats]:
        return {"day": self.day, "week": self.week, "month": self.month}


EMPTY_STATISTICS = StatisticsSet()


def _buckets(mcache: MemoryCache, days: Iterable[int]) -> list[DayBucket]:
    return [mcache[day] for day in days if day in mcache]


def window_stats(mcache: MemoryCache, days: Iterable[int], unique: bool = False) -> Stats:
    """Aggregate the buckets of the given day offsets.

    With ``unique`` a host counts once per package and once for updates.
    """
    buckets = _buckets(mcache, days)
    if not buckets:
        return EMPTY_STATS

    users: set[str] = set()
    updates: dict[str, int] = {}
    per_host: dict[PackageId, dict[str, int]] = {}
    for bucket in buckets:
        users |= bucket.hosts
        for host, count in bucket.updates.items():
            updates[host] = updates.get(host, 0) + count
        for package, hosts in bucket.downloads.items():
            counts = per_host.setdefault(package, {})
            for host, timestamps in hosts.items():
                counts[host] = counts.get(host, 0) + len(timestamps)

    if unique:
        packages = {p: sum(1 for n in hosts.values() if n) for p, hosts in per_host.items()}
        update_count = len(updates)
    else:
        packages = {p: sum(hosts.values()) for p, hosts in per_host.items()}
        update_count = sum(updates.values())

    return Stats(
        packages=packages,
        downloads=sum(packages.values()),
        updates=update_count,
        users=len(users),
    )


def compute_stats(
    mcache: MemoryCache,
    resolve: Resolver,
    unique: bool = False,
    gap: float = BURST_GAP,
    retention_days: int = RETENTION_DAYS,
) -> StatisticsSet:
    """Compute day, week and month statistics and month leaf downloads."""
    if not mcache:
        return EMPTY_STATISTICS

    month_window = range(0, retention_days)
    month = {day: bucket for day, bucket in mcache.items() if day in month_window}
    return StatisticsSet(
        day=window_stats(mcache, DAY_WINDOW, unique),
        week=window_stats(mcache, WEEK_WINDOW, unique),
        month=window_stats(mcache, month_window, unique),
        month_leaf=count_leaf_downloads(month, resolve, gap, unique),
    )
