"""Leaf download detection.

Installing one package makes a client fetch the archives of all of its
dependencies within seconds. To measure what users actually ask for, each
host's downloads of a day are split into bursts of adjacent downloads, and
within a burst only the packages that are not a dependency of another
package of the same burst are kept. Those are the leaf downloads.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .daycache import DayBucket, MemoryCache
from .repository import PackageId

# Downloads closer than this belong to the same install
BURST_GAP = 120.0

Resolver = Callable[[PackageId], frozenset[str]]
Timeline = dict[float, set[PackageId]]


def host_timelines(bucket: DayBucket) -> dict[str, Timeline]:
    """Regroup a day's downloads by host: timestamp -> packages fetched."""
    timelines: dict[str, Timeline] = {}
    for package, hosts in bucket.downloads.items():
        for host, timestamps in hosts.items():
            timeline = timelines.setdefault(host, {})
            for ts in timestamps:
                timeline.setdefault(ts, set()).add(package)
    return timelines


def split_bursts(
    events: Iterable[tuple[float, set[PackageId]]], gap: float = BURST_GAP
) -> list[list[tuple[float, set[PackageId]]]]:
    """Split events into maximal runs where consecutive events are < gap apart."""
    bursts: list[list[tuple[float, set[PackageId]]]] = []
    last: float | None = None
    for ts, packages in sorted(events, key=lambda event: event[0]):
        if last is not None and ts - last < gap:
            bursts[-1].append((ts, packages))
        else:
            bursts.append([(ts, packages)])
        last = ts
    return bursts


def leaf_downloads(timeline: Timeline, resolve: Resolver, gap: float = BURST_GAP) -> Timeline:
    """Keep, per burst, the packages no other package of the burst depends on.

    A leaf is recorded once per burst, at the first time it was fetched.
    """
    leaves: Timeline = {}
    for burst in split_bursts(timeline.items(), gap):
        dependencies: set[str] = set()
        for _, packages in burst:
            for package in packages:
                dependencies |= resolve(package)

        seen: set[PackageId] = set()
        for ts, packages in burst:
            keep = {p for p in packages if p.name not in dependencies and p not in seen}
            if keep:
                seen |= keep
                leaves.setdefault(ts, set()).update(keep)
    return leaves


def count_leaf_downloads(
    mcache: MemoryCache,
    resolve: Resolver,
    gap: float = BURST_GAP,
    unique: bool = False,
) -> dict[PackageId, int]:
    """Count leaf downloads per package over every day of the cache.

    With ``unique`` a host counts at most once per package.
    """
    per_host: dict[PackageId, dict[str, int]] = {}
    for _, bucket in sorted(mcache.items()):
        for host, timeline in host_timelines(bucket).items():
            for packages in leaf_downloads(timeline, resolve, gap).values():
                for package in packages:
                    hosts = per_host.setdefault(package, {})
                    hosts[host] = hosts.get(host, 0) + 1

    if unique:
        return {package: len(hosts) for package, hosts in per_host.items()}
    return {package: sum(hosts.values()) for package, hosts in per_host.items()}
