"""Export functions for the popularity report."""

import csv
import io
import json
import logging
from pathlib import Path

from .repository import PackageId
from .types import PopularityRecord

logger = logging.getLogger("repostats")

CSV_HEADER = "Name, Version, Downloads"
CSV_FILE = "stats.csv"
JSON_FILE = "stats.json"


def popularity_records(popularity: dict[PackageId, int]) -> list[PopularityRecord]:
    """One record per package, ordered by package id."""
    return [
        {"name": package.name, "version": package.version, "downloads": int(count)}
        for package, count in sorted(popularity.items())
    ]


def export_csv(popularity: dict[PackageId, int], output: io.StringIO | None = None) -> str:
    """Export popularity to CSV format."""
    if output is None:
        output = io.StringIO()

    output.write(CSV_HEADER + "\n")
    writer = csv.writer(output, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for r in popularity_records(popularity):
        writer.writerow([r["name"], r["version"], r["downloads"]])

    return output.getvalue()


def export_json(popularity: dict[PackageId, int]) -> str:
    """Export popularity to a JSON array of ``{name, version, downloads}``."""
    return json.dumps(popularity_records(popularity), indent=2)


def export_markdown(popularity: dict[PackageId, int]) -> str:
    """Export popularity to Markdown table format."""
    lines = [
        "| Package | Version | Downloads |",
        "|---------|---------|----------:|",
    ]

    for r in popularity_records(popularity):
        lines.append(f"| {r['name']} | {r['version']} | {r['downloads']:,} |")

    return "\n".join(lines)


def write_popularity(popularity: dict[PackageId, int], out_dir: str | Path) -> list[Path]:
    """Write ``stats.csv`` and ``stats.json`` into ``out_dir``."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []
    for name, render in ((CSV_FILE, export_csv), (JSON_FILE, export_json)):
        path = out / name
        path.write_text(render(popularity))
        written.append(path)
    logger.info("Wrote popularity of %d packages to %s", len(popularity), out)
    return written
