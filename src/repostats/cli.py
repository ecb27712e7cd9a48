"""CLI argument parsing and command implementations."""

import argparse
import dataclasses
import sys
from pathlib import Path

import yaml
from tabulate import tabulate

from .cache import dependency_cache_store
from .config import Settings, load_settings
from .dependencies import generate_dependencies_cache
from .export import export_csv, export_json, export_markdown, write_popularity
from .logging import setup_logging
from .repository import Repository
from .statistics import (
    compute_statistics,
    daily_downloads,
    load_memory_cache,
    statistics_set,
    summarize,
    top_maintainers,
    top_packages,
)
from .types import StatsSummary
from .utils import make_sparkline

# Errors reported to the user instead of a traceback
_SETUP_ERRORS = (
    OSError,  # Unreadable config or repository file
    yaml.YAMLError,  # Malformed YAML
    ValueError,  # Invalid settings or index content
)


def load_repository(file_path: str | None) -> Repository:
    """Load the repository index, or an empty repository without one."""
    if file_path is None:
        return Repository()
    return Repository.load(file_path)


def print_summary(rows: list[StatsSummary]) -> None:
    headers = ["Window", "Packages", "Downloads", "Updates", "Users"]
    table = [
        [r["window"], f"{r['packages']:,}", f"{r['downloads']:,}", f"{r['updates']:,}", f"{r['users']:,}"]
        for r in rows
    ]
    print(tabulate(table, headers=headers, tablefmt="simple"))


def cmd_stats(args: argparse.Namespace) -> None:
    """Stats command: compute statistics and write the popularity report."""
    stats = statistics_set(args.logs, args.repo, args.settings)
    if stats is None:
        print("No readable log files.")
        return

    popularity = stats.month.packages if args.raw else stats.month_leaf
    for path in write_popularity(popularity, args.output):
        print(f"Wrote {path}")
    print_summary(summarize(stats))


def cmd_show(args: argparse.Namespace) -> None:
    """Show command: display window summary and top packages in terminal."""
    settings: Settings = args.settings
    mcache = load_memory_cache(args.logs, args.repo, settings)
    if mcache is None:
        print("No readable log files.")
        return
    stats = compute_statistics(mcache, args.repo, settings)

    print_summary(summarize(stats))
    if not stats.month_leaf:
        return

    print()
    rows = []
    for i, (package, leaf) in enumerate(top_packages(stats.month_leaf, ntop=args.limit), 1):
        trend = daily_downloads(mcache, package, settings.retention_days)
        rows.append(
            [
                i,
                package.name,
                package.version,
                f"{leaf:,}",
                f"{stats.month.packages.get(package, 0):,}",
                f"{stats.week.packages.get(package, 0):,}",
                f"{stats.day.packages.get(package, 0):,}",
                make_sparkline(trend, width=14),
            ]
        )

    headers = ["#", "Package", "Version", "Leaf", "Month", "Week", "Day", "Trend"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_export(args: argparse.Namespace) -> None:
    """Export command: export leaf popularity in various formats."""
    stats = statistics_set(args.logs, args.repo, args.settings)
    if stats is None:
        print("No readable log files.")
        return

    # Generate export based on format
    if args.format == "csv":
        output = export_csv(stats.month_leaf)
    elif args.format == "json":
        output = export_json(stats.month_leaf)
    elif args.format == "markdown" or args.format == "md":
        output = export_markdown(stats.month_leaf)
    else:
        print(f"Unknown format: {args.format}")
        return

    # Write to file or stdout
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(f"Exported to {args.output}")
    else:
        print(output)


def cmd_deps(args: argparse.Namespace) -> None:
    """Deps command: pre-compute the transitive dependency cache."""
    if not args.repo.manifests:
        print("No packages in repository. Pass an index with '-r'.")
        return

    store = dependency_cache_store(args.settings.cache_dir)
    cache = generate_dependencies_cache(args.repo, store.read())
    store.write(cache)
    print(f"Cached dependencies of {len(cache)} packages in {store.path}")


def cmd_maintainers(args: argparse.Namespace) -> None:
    """Maintainers command: rank maintainers by package count."""
    ranked = top_maintainers(args.repo, ntop=args.limit)
    if not ranked:
        print("No maintainers in repository.")
        return

    rows = [[i, name, count] for i, (name, count) in enumerate(ranked, 1)]
    print(tabulate(rows, headers=["#", "Maintainer", "Packages"], tablefmt="simple"))


def _add_logs_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "logs",
        nargs="+",
        help="Access log files (combined log format)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Package popularity statistics from repository access logs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        help="YAML settings file (default: repostats.yml if present)",
    )
    parser.add_argument(
        "-r",
        "--repository",
        help="Repository index file (YAML or JSON)",
    )
    parser.add_argument(
        "--cache-dir",
        help="Directory of the cache files (overrides the settings file)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug messages",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Compute statistics and write stats.csv / stats.json",
    )
    _add_logs_argument(stats_parser)
    stats_parser.add_argument(
        "-o",
        "--output",
        default=".",
        help="Output directory (default: current directory)",
    )
    stats_parser.add_argument(
        "--raw",
        action="store_true",
        help="Report raw month downloads instead of leaf downloads",
    )
    stats_parser.set_defaults(func=cmd_stats)

    # show command
    show_parser = subparsers.add_parser(
        "show",
        help="Display window summary and top packages",
    )
    _add_logs_argument(show_parser)
    show_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=20,
        help="Number of packages to show (default: 20)",
    )
    show_parser.set_defaults(func=cmd_show)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export leaf popularity in various formats (csv, json, markdown)",
    )
    _add_logs_argument(export_parser)
    export_parser.add_argument(
        "-f",
        "--format",
        choices=["csv", "json", "markdown", "md"],
        default="csv",
        help="Export format (default: csv)",
    )
    export_parser.add_argument(
        "-o",
        "--output",
        help="Output file (default: stdout)",
    )
    export_parser.set_defaults(func=cmd_export)

    # deps command
    deps_parser = subparsers.add_parser(
        "deps",
        help="Pre-compute the transitive dependency cache",
    )
    deps_parser.set_defaults(func=cmd_deps)

    # maintainers command
    maintainers_parser = subparsers.add_parser(
        "maintainers",
        help="Rank maintainers by number of packages",
    )
    maintainers_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=10,
        help="Number of maintainers to show (default: 10)",
    )
    maintainers_parser.set_defaults(func=cmd_maintainers)

    return parser


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(verbose=args.verbose, quiet=args.quiet)
    try:
        settings = load_settings(args.config)
        if args.cache_dir:
            settings = dataclasses.replace(settings, cache_dir=Path(args.cache_dir).expanduser())
        args.settings = settings
        args.repo = load_repository(args.repository)
    except _SETUP_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    args.func(args)
