"""Statistics pipeline: log files in, ``StatisticsSet`` out.

Parsing is incremental. For every log file the log cache remembers how many
bytes were consumed, a digest of its head and the day buckets built from it.
A later run re-bases those buckets to the current day and only parses what
was appended since.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path

from .aggregate import StatisticsSet, compute_stats
from .cache import (
    LogCache,
    LogCacheEntry,
    dependency_cache_store,
    is_valid,
    log_cache_store,
    partial_digest,
)
from .classify import EntryClassifier
from .config import Settings
from .daycache import MemoryCache, add_entry, merge_caches, shift_cache
from .dependencies import TransitiveDependencies, select_resolver
from .logreader import LogReader, ScannerError
from .repository import PackageId, Repository
from .types import StatsSummary
from .utils import SECONDS_PER_DAY, day_boundary

logger = logging.getLogger("repostats")


def _cache_key(path: Path) -> str:
    return str(path.resolve())


def _read_new_entries(
    path: Path,
    offset: int,
    mcache: MemoryCache,
    classifier: EntryClassifier,
    reference_time: float,
    only_since: float,
    settings: Settings,
) -> int:
    """Add the entries of ``path`` past ``offset`` to ``mcache``.

    Returns the offset the next run resumes from.
    """
    with LogReader(path, offset, strict=settings.strict) as reader:
        while not reader.is_empty():
            try:
                entries = reader.read(settings.chunk_size)
            except ScannerError as e:
                logger.warning("Dropping chunk: %s", e)
                continue
            for entry in entries:
                classified = classifier.classify(entry)
                if classified is None or classified.timestamp <= only_since:
                    continue
                add_entry(mcache, classified, reference_time, settings.retention_days)
            logger.info("Reading new entries from %s: %3d%%", path, reader.progress)
        if reader.skipped:
            logger.warning("%s: skipped %d malformed line(s)", path, reader.skipped)
        return reader.position


def load_memory_cache(
    files: Sequence[str | Path],
    repository: Repository,
    settings: Settings,
    now: float | None = None,
) -> MemoryCache | None:
    """Build the memory cache of ``files``, reusing and updating the log cache.

    Returns None when no file is given or none of them exists.
    """
    reference_time = day_boundary(time.time() if now is None else now)
    only_since = reference_time - settings.lookback_days * SECONDS_PER_DAY

    paths = []
    for name in files:
        path = Path(name)
        if path.is_file():
            paths.append(path)
        else:
            logger.warning("Log file %s not found, skipping", name)
    if not paths:
        return None

    store = log_cache_store(settings.cache_dir)
    previous: LogCache = store.read() or {}
    classifier = EntryClassifier(repository.hash_table(), settings.site_pattern)

    log_cache: LogCache = {}
    mcache: MemoryCache = {}
    for path in paths:
        key = _cache_key(path)
        entry = previous.get(key)
        offset = 0
        days: MemoryCache = {}
        try:
            if entry is not None:
                if is_valid(entry, path, only_since, settings.digest_bytes, settings.retention_days):
                    shift = round((reference_time - entry.reference_time) / SECONDS_PER_DAY)
                    days = shift_cache(entry.days, shift, settings.retention_days)
                    offset = entry.size
                    logger.debug("Resuming %s at byte %d", path, offset)
                else:
                    logger.info("Dropping invalid cache for %s", path)

            size = _read_new_entries(
                path, offset, days, classifier, reference_time, only_since, settings
            )
            digest = partial_digest(path, size, settings.digest_bytes)
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            continue

        log_cache[key] = LogCacheEntry(
            size=size,
            digest=digest,
            only_since=only_since,
            reference_time=reference_time,
            days=days,
            retention_days=settings.retention_days,
        )
        mcache = merge_caches(mcache, days)

    store.write(log_cache)
    return mcache


def compute_statistics(
    mcache: MemoryCache, repository: Repository, settings: Settings
) -> StatisticsSet:
    """Compute every window of a memory cache and update the dependency cache."""
    store = dependency_cache_store(settings.cache_dir)
    resolver = select_resolver(repository, store.read())
    stats = compute_stats(
        mcache,
        resolver,
        unique=settings.per_ip,
        gap=settings.burst_gap,
        retention_days=settings.retention_days,
    )
    if isinstance(resolver, TransitiveDependencies) and resolver.computed:
        store.write(resolver.cache)
    return dataclasses.replace(
        stats,
        hash_table=repository.hash_table(),
        shared_hashes=repository.shared_hashes(),
    )


def statistics_set(
    files: Sequence[str | Path],
    repository: Repository,
    settings: Settings,
    now: float | None = None,
) -> StatisticsSet | None:
    """Statistics of ``files``; None when none of them could be read."""
    mcache = load_memory_cache(files, repository, settings, now)
    if mcache is None:
        return None
    return compute_statistics(mcache, repository, settings)


# -----------------------------------------------------------------------------
# Report helpers
# -----------------------------------------------------------------------------


def popularity_by_name(counts: dict[PackageId, int]) -> dict[str, int]:
    """Sum counts across the versions of each package name."""
    totals: Counter[str] = Counter()
    for package, count in counts.items():
        totals[package.name] += count
    return dict(totals)


def top_packages(
    counts: dict[PackageId, int],
    packages: Iterable[PackageId] | None = None,
    ntop: int | None = None,
    reverse: bool = True,
) -> list[tuple[PackageId, int]]:
    """Rank packages by count, most downloaded first unless ``reverse`` is False.

    ``packages`` defaults to the packages of ``counts``; packages without a
    count rank with 0. Ties are ordered by package id.
    """
    ranked = sorted((p, counts.get(p, 0)) for p in (counts if packages is None else packages))
    ranked.sort(key=lambda item: item[1], reverse=reverse)
    return ranked if ntop is None else ranked[:ntop]


def top_maintainers(
    repository: Repository, ntop: int | None = None, reverse: bool = True
) -> list[tuple[str, int]]:
    """Rank maintainers by the number of package versions they maintain."""
    ranked = sorted(Counter(repository.maintainers()).items())
    ranked.sort(key=lambda item: item[1], reverse=reverse)
    return ranked if ntop is None else ranked[:ntop]


def summarize(stats_set: StatisticsSet) -> list[StatsSummary]:
    """Headline numbers of each window, plus leaf downloads of the month."""
    rows: list[StatsSummary] = [
        {
            "window": window,
            "packages": len(stats.packages),
            "downloads": stats.downloads,
            "updates": stats.updates,
            "users": stats.users,
        }
        for window, stats in stats_set.windows().items()
    ]
    rows.append(
        {
            "window": "month (leaf)",
            "packages": len(stats_set.month_leaf),
            "downloads": sum(stats_set.month_leaf.values()),
            "updates": stats_set.month.updates,
            "users": stats_set.month.users,
        }
    )
    return rows


def daily_downloads(mcache: MemoryCache, package: PackageId, retention_days: int) -> list[int]:
    """Raw downloads of ``package`` per day, oldest first."""
    counts = []
    for day in range(retention_days - 1, -1, -1):
        bucket = mcache.get(day)
        hosts = bucket.downloads.get(package, {}) if bucket else {}
        counts.append(sum(len(timestamps) for timestamps in hosts.values()))
    return counts
