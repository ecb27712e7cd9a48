"""Shared fixtures for the repostats tests."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from repostats.config import Settings
from repostats.repository import PackageId, Repository

# End of a UTC day, and a moment inside it
REF = 20000 * 86400.0
NOW = REF - 3600.0

FOO_HASH = "0123456789abcdef0123456789abcdef"
FOO_CACHE_PATH = f"md5/01/{FOO_HASH}"

FOO = PackageId("foo", "1.0")
BAR = PackageId("bar", "2.0")
BAZ = PackageId("baz", "0.1")
QUX = PackageId("qux", "1.0")

REPOSITORY_INDEX = {
    "packages": [
        {
            "name": "foo",
            "version": "1.0",
            "maintainer": "alice@example.com",
            "checksum": [f"md5={FOO_HASH}"],
            "depends": ["bar >= 2.0"],
        },
        {
            "name": "bar",
            "version": "2.0",
            "maintainer": "alice@example.com",
            "depends": ["baz"],
            "depopts": ["qux"],
        },
        {"name": "baz", "version": "0.1", "maintainer": "bob@example.com"},
        {"name": "qux", "version": "1.0"},
    ]
}


def log_line(
    host: str,
    ts: float,
    request: str,
    referrer: str = "-",
    client: str = "opam/2.1.0",
) -> str:
    """Format one combined log line for a UTC timestamp."""
    date = datetime.fromtimestamp(ts, timezone.utc).strftime("%d/%b/%Y:%H:%M:%S +0000")
    return f'{host} - - [{date}] "{request}" 200 1234 "{referrer}" "{client}"\n'


def archive(package: PackageId) -> str:
    return f"GET /archives/{package}+opam.tar.gz HTTP/1.1"


UPDATE = "GET /urls.txt HTTP/1.1"


@pytest.fixture
def repository_file(tmp_path):
    """Write the sample repository index as YAML."""
    path = tmp_path / "index.yml"
    path.write_text(yaml.dump(REPOSITORY_INDEX))
    return path


@pytest.fixture
def repository(repository_file):
    return Repository.load(repository_file)


@pytest.fixture
def settings(tmp_path):
    """Settings with the caches in a temporary directory."""
    return Settings(cache_dir=tmp_path / "cache")


@pytest.fixture
def write_log(tmp_path):
    """Return a function writing log lines to a file under tmp_path."""

    def _write(lines: list[str], name: str = "access.log") -> Path:
        path = tmp_path / name
        path.write_text("".join(lines))
        return path

    return _write
