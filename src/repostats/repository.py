"""Repository metadata: package ids, manifests and the dependency graph."""

from __future__ import annotations

import json
import logging
import posixpath
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

import yaml

from .types import ManifestRecord
from .utils import validate_package_name

logger = logging.getLogger("repostats")


class PackageId(NamedTuple):
    """A package name and version, written ``name.version``."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}.{self.version}"

    @classmethod
    def parse(cls, text: str) -> PackageId:
        """Parse ``name.version``, splitting at the first period.

        Raises:
            ValueError: If the string has no version or an invalid name.
        """
        name, sep, version = text.partition(".")
        if not sep or not version:
            raise ValueError(f"Not a package string: {text!r}")
        valid, error = validate_package_name(name)
        if not valid:
            raise ValueError(f"{error}: {text!r}")
        return cls(name, version)


def _dependency_name(formula: str) -> str:
    """Keep the package name of a dependency such as ``"bar >= 1.0"``."""
    return formula.split()[0].strip('"')


@dataclass(frozen=True)
class Manifest:
    """Metadata of one package version, as declared in the repository."""

    name: str
    version: str
    maintainer: str = ""
    description: str = ""
    url: str = ""
    checksums: tuple[str, ...] = ()
    depends: tuple[str, ...] = ()
    depopts: tuple[str, ...] = ()

    @property
    def package(self) -> PackageId:
        return PackageId(self.name, self.version)

    def dependency_names(self) -> frozenset[str]:
        """Names of the direct dependencies, optional ones included."""
        return frozenset(self.depends) | frozenset(self.depopts)

    def hash_paths(self) -> list[str]:
        """Archive cache paths (``kind/xx/hex``) of the declared checksums."""
        paths = []
        for checksum in self.checksums:
            kind, sep, value = checksum.partition("=")
            if sep and value:
                paths.append(posixpath.join(kind, value[:2], value))
        return paths

    @classmethod
    def from_record(cls, record: ManifestRecord | dict[str, Any]) -> Manifest:
        """Build a manifest from an index entry; versions are kept as strings."""
        checksum = record.get("checksum") or []
        if isinstance(checksum, str):
            checksum = [checksum]
        return cls(
            name=str(record["name"]),
            version=str(record["version"]),
            maintainer=str(record.get("maintainer") or ""),
            description=str(record.get("description") or ""),
            url=str(record.get("url") or ""),
            checksums=tuple(str(c) for c in checksum),
            depends=tuple(_dependency_name(str(d)) for d in record.get("depends") or []),
            depopts=tuple(_dependency_name(str(d)) for d in record.get("depopts") or []),
        )

    def to_record(self) -> ManifestRecord:
        return {
            "name": self.name,
            "version": self.version,
            "maintainer": self.maintainer,
            "description": self.description,
            "url": self.url,
            "checksum": list(self.checksums),
            "depends": list(self.depends),
            "depopts": list(self.depopts),
        }


def load_index(file_path: str | Path) -> list[dict[str, Any]]:
    """Load package entries from a repository index (YAML or JSON).

    Supports:
    - YAML (.yml, .yaml): mapping with a 'packages' list, or a bare list
    - JSON (.json): same structure
    """
    path = Path(file_path)
    with open(path) as f:
        content = f.read()

    if path.suffix.lower() == ".json":
        data = json.loads(content)
    else:
        data = yaml.safe_load(content)

    if isinstance(data, dict):
        data = data.get("packages") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of packages")
    return data


@dataclass
class Repository:
    """In-memory view of a package repository index."""

    manifests: dict[PackageId, Manifest] = field(default_factory=dict)
    _by_name: dict[str, list[PackageId]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_name = {}
        for package in sorted(self.manifests):
            self._by_name.setdefault(package.name, []).append(package)

    @classmethod
    def from_manifests(cls, manifests: list[Manifest]) -> Repository:
        return cls({m.package: m for m in manifests})

    @classmethod
    def load(cls, file_path: str | Path) -> Repository:
        """Load a repository index file."""
        manifests = [Manifest.from_record(record) for record in load_index(file_path)]
        logger.debug("Loaded %d packages from %s", len(manifests), file_path)
        return cls.from_manifests(manifests)

    def packages(self) -> list[PackageId]:
        return sorted(self.manifests)

    def manifest(self, package: PackageId) -> Manifest | None:
        return self.manifests.get(package)

    def versions(self, name: str) -> list[PackageId]:
        return list(self._by_name.get(name, []))

    def _name_dependencies(self, name: str) -> frozenset[str]:
        """Direct dependency names of every version of a package name."""
        names: set[str] = set()
        for package in self.versions(name):
            names |= self.manifests[package].dependency_names()
        return frozenset(names)

    def dependency_closure(self, package: PackageId) -> frozenset[str]:
        """Names of every package ``package`` transitively depends on.

        Every version of a dependency is followed, which over-approximates
        what a solver would pick. The package's own name is never included.
        """
        manifest = self.manifests.get(package)
        if manifest is None:
            return frozenset()

        seen: set[str] = set()
        queue = deque(manifest.dependency_names())
        while queue:
            name = queue.popleft()
            if name in seen:
                continue
            seen.add(name)
            queue.extend(self._name_dependencies(name) - seen)
        seen.discard(package.name)
        return frozenset(seen)

    def hash_table(self) -> dict[str, PackageId]:
        """Map archive cache paths to the first package declaring them."""
        table: dict[str, PackageId] = {}
        for package in self.packages():
            for path in self.manifests[package].hash_paths():
                table.setdefault(path, package)
        return table

    def shared_hashes(self) -> dict[str, list[PackageId]]:
        """Archive cache paths declared by more than one package."""
        claims: dict[str, list[PackageId]] = {}
        for package in self.packages():
            for path in self.manifests[package].hash_paths():
                claims.setdefault(path, []).append(package)
        return {path: pkgs for path, pkgs in claims.items() if len(pkgs) > 1}

    def maintainers(self) -> list[str]:
        """Maintainer of every package version (one entry per version)."""
        return [self.manifests[p].maintainer for p in self.packages() if self.manifests[p].maintainer]
