"""Dependency-name resolution for leaf download detection.

Two policies share one memoizing base. Results are cached per package in an
explicit ``DependencyCache`` together with the manifest they were computed
from, and reused for as long as the manifest is unchanged:

- ``TransitiveDependencies`` walks the whole repository graph. It is the
  accurate policy, and the expensive one, so its cache is persisted.
- ``DeclaredDependencies`` only reads the required dependencies declared by
  the manifest. Used when no transitive cache exists yet; it misses indirect
  and optional dependencies and so counts more downloads as leaves.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import NamedTuple

from .repository import Manifest, PackageId, Repository

logger = logging.getLogger("repostats")


class DependencyRecord(NamedTuple):
    manifest: Manifest
    names: frozenset[str]


DependencyCache = dict[PackageId, DependencyRecord]


class DependencyResolver(ABC):
    """Callable returning the dependency names of a package, memoized."""

    policy = "none"

    def __init__(self, repository: Repository, cache: DependencyCache | None = None) -> None:
        self.repository = repository
        self.cache: DependencyCache = dict(cache or {})
        self.computed = 0

    def __call__(self, package: PackageId) -> frozenset[str]:
        manifest = self.repository.manifest(package)
        if manifest is None:
            return frozenset()

        record = self.cache.get(package)
        if record is not None and record.manifest == manifest:
            return record.names

        names = self._compute(package, manifest)
        self.cache[package] = DependencyRecord(manifest, names)
        self.computed += 1
        return names

    @abstractmethod
    def _compute(self, package: PackageId, manifest: Manifest) -> frozenset[str]:
        """Dependency names of ``package``, ignoring the memo."""


class TransitiveDependencies(DependencyResolver):
    """Dependency names from the closure of the repository graph."""

    policy = "transitive"

    def _compute(self, package: PackageId, manifest: Manifest) -> frozenset[str]:
        return self.repository.dependency_closure(package)


class DeclaredDependencies(DependencyResolver):
    """Required dependency names declared by the manifest, optional ones excluded."""

    policy = "declared"

    def _compute(self, package: PackageId, manifest: Manifest) -> frozenset[str]:
        return frozenset(manifest.depends) - {package.name}


def select_resolver(repository: Repository, cache: DependencyCache | None) -> DependencyResolver:
    """Use the graph closure when a dependency cache exists, else manifests only."""
    if cache:
        logger.info("Existing dependency cache, using all dependencies (repository graph)")
        return TransitiveDependencies(repository, cache)
    logger.info("No dependency cache found, using only declared manifest dependencies")
    return DeclaredDependencies(repository)


def generate_dependencies_cache(
    repository: Repository, cache: DependencyCache | None = None
) -> DependencyCache:
    """Resolve the transitive dependencies of every package in the repository."""
    start = time.perf_counter()
    resolver = TransitiveDependencies(repository, cache)
    previous = len(resolver.cache)
    for package in repository.packages():
        resolver(package)
    logger.info(
        "Dependency cache has %d packages, %d recomputed (%.3fs)",
        len(resolver.cache),
        resolver.computed,
        time.perf_counter() - start,
    )
    logger.debug("%d packages were new to the cache", len(resolver.cache) - previous)
    return resolver.cache
