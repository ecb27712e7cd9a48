"""Combined access log reader.

Streams an Apache combined-format log into ``LogEntry`` records, one chunk
of lines at a time, starting from an arbitrary byte offset so a growing log
only has its new suffix parsed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("repostats")

# host ident user [date] "request" status bytes ["referrer" "client"]
COMBINED_LOG_RE = re.compile(
    r'^(?P<host>\S+)\s+\S+\s+\S+\s+\[(?P<date>[^\]]+)\]\s+'
    r'"(?P<request>[^"]*)"\s+'
    r"(?P<status>\d{3}|-)\s+"
    r"(?P<size>\S+)"
    r'(?:\s+"(?P<referrer>[^"]*)"\s+"(?P<client>[^"]*)")?'
    r"(?:\s.*)?$"
)

DEFAULT_CHUNK_SIZE = 10_000


class ScannerError(Exception):
    """A log line could not be scanned in strict mode."""


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One raw access log record."""

    host: str
    date: str
    request: str
    referrer: str = "-"
    client: str = ""


def parse_line(line: str) -> LogEntry | None:
    """Parse one combined-log line, or return None if it does not match."""
    m = COMBINED_LOG_RE.match(line)
    if not m:
        return None
    return LogEntry(
        host=m.group("host"),
        date=m.group("date"),
        request=m.group("request"),
        referrer=m.group("referrer") if m.group("referrer") is not None else "-",
        client=m.group("client") or "",
    )


class LogReader:
    """Chunked, resumable reader over one log file.

    ``reads`` counts the bytes consumed since ``offset`` and ``position`` is
    the absolute offset of the next unread byte, which is what a later run
    resumes from. A trailing line without a newline is left unread.
    """

    def __init__(self, path: str | Path, offset: int = 0, strict: bool = False) -> None:
        self.path = Path(path)
        self.name = str(path)
        self.strict = strict
        self.offset = offset
        self._file = self.path.open("rb")
        self._file.seek(offset)
        self.size = max(0, self.path.stat().st_size - offset)
        self.reads = 0
        self.skipped = 0
        self._exhausted = False

    def __enter__(self) -> LogReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[LogEntry]:
        while not self.is_empty():
            yield from self.read(DEFAULT_CHUNK_SIZE)

    def close(self) -> None:
        self._file.close()

    @property
    def position(self) -> int:
        return self.offset + self.reads

    @property
    def progress(self) -> int:
        """Percentage of the available bytes consumed so far."""
        if self.size == 0:
            return 100
        return min(100, 100 * self.reads // self.size)

    def is_empty(self) -> bool:
        return self._exhausted or self.reads >= self.size

    def _malformed(self, position: int, reason: str) -> None:
        if self.strict:
            raise ScannerError(f"{self.name}: {reason} at byte {position}")
        self.skipped += 1
        logger.debug("%s: skipping %s at byte %d", self.name, reason, position)

    def read(self, count: int) -> list[LogEntry]:
        """Read up to ``count`` lines and return the entries parsed from them.

        Raises:
            ScannerError: In strict mode, on the first malformed line. The
                lines read before it in this chunk are lost.
        """
        entries: list[LogEntry] = []
        for _ in range(count):
            position = self._file.tell()
            raw = self._file.readline()
            if not raw.endswith(b"\n"):
                # EOF, or a line still being written
                self._file.seek(position)
                self._exhausted = True
                break
            self.reads += len(raw)

            try:
                line = raw.decode("utf-8").rstrip("\r\n")
            except UnicodeDecodeError:
                self._malformed(position, "undecodable line")
                continue
            if not line.strip():
                continue

            entry = parse_line(line)
            if entry is None:
                self._malformed(position, "malformed line")
                continue
            entries.append(entry)
        return entries
