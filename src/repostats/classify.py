"""Classification of raw log entries.

Maps each ``LogEntry`` to what was requested (page view, archive download,
index update), when, from where and with which client. Request rules are
tried in order and the first match wins:

1. ``GET /<page>.html``                           -> page view
2. ``GET [/<version>]/archives/<name.version>+opam.tar.gz`` -> archive download
3. ``GET [/<version>]/cache/<kind>/<xx>/<hash>``   -> archive download, by hash
4. ``GET [/][/<version>]/urls.txt``               -> index update

Anything else is kept as an unknown request.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .logreader import LogEntry
from .repository import PackageId

HTML_RE = re.compile(r"GET /(.+)\.html HTTP/[.0-9]+")
ARCHIVE_RE = re.compile(r"GET (/[.0-9]+)?/archives/(.+)\+opam\.tar\.gz HTTP/[.0-9]+")
CACHE_RE = re.compile(r"GET (/[.0-9]+)?/cache/(.+/../.+) HTTP/[.0-9]+")
# Some clients send a doubled leading slash
UPDATE_RE = re.compile(r"GET (/)?(/[.0-9]+)?/urls\.txt HTTP/[.0-9]+")

DEFAULT_SITE_PATTERN = r"https?://opam\.ocaml(?:\.org|pro\.com)/(?P<path>.*?)/?$"

BROWSER_RE = re.compile(r"MSIE|Chrome|Firefox|Safari")
SYSTEM_RE = re.compile(r"Windows|Macintosh|iPad|iPhone|Android|Linux|FreeBSD")

LOG_DATE_FORMAT = "%d/%b/%Y:%H:%M:%S %z"


# -----------------------------------------------------------------------------
# Request kinds
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PageView:
    path: str


@dataclass(frozen=True, slots=True)
class ArchiveDownload:
    package: PackageId


@dataclass(frozen=True, slots=True)
class IndexUpdate:
    pass


@dataclass(frozen=True, slots=True)
class Unknown:
    raw: str


RequestKind = PageView | ArchiveDownload | IndexUpdate | Unknown


# -----------------------------------------------------------------------------
# Referrer and client
# -----------------------------------------------------------------------------


class ReferrerKind(str, Enum):
    NONE = "none"
    INTERNAL = "internal"
    EXTERNAL = "external"


@dataclass(frozen=True, slots=True)
class Referrer:
    kind: ReferrerKind
    value: str = ""


class Browser(str, Enum):
    INTERNET_EXPLORER = "ie"
    CHROME = "chrome"
    FIREFOX = "firefox"
    SAFARI = "safari"
    UNKNOWN = "unknown"


class OperatingSystem(str, Enum):
    WINDOWS = "windows"
    MAC = "mac"
    UNIX = "unix"
    ANDROID = "android"
    UNKNOWN = "unknown"


_BROWSERS = {
    "MSIE": Browser.INTERNET_EXPLORER,
    "Chrome": Browser.CHROME,
    "Firefox": Browser.FIREFOX,
    "Safari": Browser.SAFARI,
}

_SYSTEMS = {
    "Windows": OperatingSystem.WINDOWS,
    "Macintosh": OperatingSystem.MAC,
    "iPad": OperatingSystem.MAC,
    "iPhone": OperatingSystem.MAC,
    "Linux": OperatingSystem.UNIX,
    "FreeBSD": OperatingSystem.UNIX,
    "Android": OperatingSystem.ANDROID,
}


@dataclass(frozen=True, slots=True)
class Client:
    browser: Browser
    system: OperatingSystem
    raw: str = ""


@dataclass(frozen=True, slots=True)
class ClassifiedEntry:
    """A log entry with its request, timestamp, referrer and client decoded."""

    entry: LogEntry
    timestamp: float
    request: RequestKind
    referrer: Referrer
    client: Client

    @property
    def host(self) -> str:
        return self.entry.host


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------


def parse_timestamp(date: str) -> float:
    """Parse a ``DD/Mon/YYYY:HH:MM:SS +ZZZZ`` date; 0.0 if it cannot be parsed."""
    try:
        return datetime.strptime(date, LOG_DATE_FORMAT).timestamp()
    except ValueError:
        return 0.0


def classify_request(request: str, hash_table: dict[str, PackageId]) -> RequestKind | None:
    """Classify a request line.

    Returns None for a ghost package: a cache path whose hash no known
    package declares.
    """
    if m := HTML_RE.match(request):
        return PageView(m.group(1))
    if m := ARCHIVE_RE.match(request):
        try:
            return ArchiveDownload(PackageId.parse(posixpath.basename(m.group(2))))
        except ValueError:
            return Unknown(request)
    if m := CACHE_RE.match(request):
        package = hash_table.get(m.group(2))
        if package is None:
            return None
        return ArchiveDownload(package)
    if UPDATE_RE.match(request):
        return IndexUpdate()
    return Unknown(request)


def classify_referrer(referrer: str, site_re: re.Pattern[str]) -> Referrer:
    if referrer == "-":
        return Referrer(ReferrerKind.NONE)
    if m := site_re.match(referrer):
        return Referrer(ReferrerKind.INTERNAL, m.group("path"))
    return Referrer(ReferrerKind.EXTERNAL, referrer)


def classify_client(client: str) -> Client:
    """Detect browser and operating system from the leftmost known keyword."""
    browser = Browser.UNKNOWN
    if m := BROWSER_RE.search(client):
        browser = _BROWSERS[m.group(0)]
    system = OperatingSystem.UNKNOWN
    if m := SYSTEM_RE.search(client):
        system = _SYSTEMS[m.group(0)]
    return Client(browser, system, client)


@dataclass(frozen=True)
class EntryClassifier:
    """Classify log entries against a repository's archive hash table."""

    hash_table: dict[str, PackageId]
    site_pattern: str = DEFAULT_SITE_PATTERN

    def __post_init__(self) -> None:
        object.__setattr__(self, "_site_re", re.compile(self.site_pattern))

    def classify(self, entry: LogEntry) -> ClassifiedEntry | None:
        """Classify one entry; None if it refers to a ghost package."""
        request = classify_request(entry.request, self.hash_table)
        if request is None:
            return None
        return ClassifiedEntry(
            entry=entry,
            timestamp=parse_timestamp(entry.date),
            request=request,
            referrer=classify_referrer(entry.referrer, self._site_re),
            client=classify_client(entry.client),
        )
