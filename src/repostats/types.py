"""Type definitions for repostats using TypedDict for exported structures."""

from typing import TypedDict


class PopularityRecord(TypedDict):
    """One row of the popularity report (stats.csv / stats.json)."""

    name: str
    version: str
    downloads: int


class StatsSummary(TypedDict):
    """Headline numbers of one statistics window."""

    window: str
    packages: int
    downloads: int
    updates: int
    users: int


class ManifestRecord(TypedDict, total=False):
    """Package entry of a repository index file."""

    name: str
    version: str
    maintainer: str
    description: str
    url: str
    checksum: list[str]
    depends: list[str]
    depopts: list[str]


class LogCacheRecord(TypedDict):
    """Persisted form of one log file cache entry."""

    size: int
    digest: str
    only_since: float
    reference_time: float
    days: dict[str, dict]
    retention_days: int


class DependencyCacheRecord(TypedDict):
    """Persisted form of one dependency cache entry."""

    manifest: ManifestRecord
    names: list[str]
