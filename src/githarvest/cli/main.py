# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from ..core.config import HarvestConfig, load_config_from_path
from ..core.ingest import Ingestor
from ..core.log import configure_logging
from ..core.projects import ProjectIdAllocator
from ..core.stats_aggregate import load_run_summaries, merge_run_stats
from ..sinks.parquet import export_parquet
from ..sources.feed import FeedError, iter_project_feed


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level githarvest CLI argument parser.

    Returns:
        argparse.ArgumentParser: Parser with the ``run``, ``feed``,
        ``merge-stats`` and ``export-parquet`` subcommands.
    """
    parser = argparse.ArgumentParser(prog="githarvest", description="Mine git repositories into a deduplicated corpus.")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g., DEBUG, INFO, WARNING). Overrides logging.level from the config.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_p = subparsers.add_parser("run", help="Mine every project in a feed.")
    run_p.add_argument("--feed", required=True, type=Path, help="CSV feed of 'url' or 'url,id' records.")
    run_p.add_argument("-c", "--config", help="Path to config file (TOML or JSON).")
    run_p.add_argument("--output", type=Path, help="Override output.root.")
    run_p.add_argument("--workers", type=int, help="Override pool.max_workers.")
    run_p.add_argument("--dry-run", action="store_true", help="Validate config and feed, then exit.")

    feed_p = subparsers.add_parser("feed", help="Validate a feed and print the parsed projects.")
    feed_p.add_argument("feed", type=Path, help="CSV feed to check.")

    merge_p = subparsers.add_parser("merge-stats", help="Merge run summary JSON files.")
    merge_p.add_argument("stats_files", nargs="+", type=Path, help="Paths to run-*.json files.")
    merge_p.add_argument("--output", "-o", type=Path, help="Output file (defaults to stdout).")

    export_p = subparsers.add_parser("export-parquet", help="Export project records to Parquet.")
    export_p.add_argument("root", type=Path, help="Output root of a previous run.")
    export_p.add_argument("out", type=Path, help="Parquet file to write.")

    return parser


def _apply_run_overrides(cfg: HarvestConfig, args: argparse.Namespace) -> None:
    """Apply ``run`` flags to ``cfg`` in place."""
    if getattr(args, "output", None) is not None:
        cfg.output.root = Path(args.output)
    if getattr(args, "workers", None) is not None:
        cfg.pool.max_workers = int(args.workers)


def _setup_logging(args: argparse.Namespace, cfg: HarvestConfig | None = None) -> None:
    if args.log_level is not None:
        configure_logging(level=args.log_level)
    elif cfg is not None:
        cfg.logging.apply()
    else:
        configure_logging(level="INFO")


def _cmd_run(args: argparse.Namespace) -> int:
    cfg = load_config_from_path(args.config) if args.config else HarvestConfig()
    _apply_run_overrides(cfg, args)
    _setup_logging(args, cfg)
    cfg.validate()
    if args.dry_run:
        errors: list[FeedError] = []
        projects = list(iter_project_feed(args.feed, ProjectIdAllocator(), on_error=errors.append))
        print(json.dumps({"config": cfg.to_dict(), "projects": len(projects), "feed_errors": len(errors)}, indent=2))
        return 0
    summary = Ingestor(cfg).harvest(args.feed)
    print(json.dumps(summary, indent=2))
    return 0


def _cmd_feed(args: argparse.Namespace) -> int:
    """Print the projects a feed would schedule; exit 1 if any record is malformed."""
    _setup_logging(args)
    errors: list[FeedError] = []
    projects = [
        {"url": p.url, "id": p.id}
        for p in iter_project_feed(args.feed, ProjectIdAllocator(), on_error=errors.append)
    ]
    print(json.dumps(projects, indent=2))
    return 1 if errors else 0


def _cmd_merge_stats(args: argparse.Namespace) -> int:
    """Merge run summaries and write to stdout or a file."""
    _setup_logging(args)
    merged = merge_run_stats(load_run_summaries(args.stats_files))
    text = json.dumps(merged, indent=2, sort_keys=True)
    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


def _cmd_export_parquet(args: argparse.Namespace) -> int:
    _setup_logging(args)
    rows = export_parquet(args.root, args.out)
    print(json.dumps({"rows": rows, "output": str(args.out)}))
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch a parsed CLI command to its handler.

    Returns:
        int: Process exit code, where 0 indicates success and non-zero
        values indicate failure.
    """
    cmd = args.command
    if cmd == "run":
        return _cmd_run(args)
    if cmd == "feed":
        return _cmd_feed(args)
    if cmd == "merge-stats":
        return _cmd_merge_stats(args)
    if cmd == "export-parquet":
        return _cmd_export_parquet(args)
    print(f"Unknown command: {cmd}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the githarvest command-line interface.

    Args:
        argv (Sequence[str] | None): Optional list of argument strings to
            parse instead of ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code. A completed ``run`` returns 0 even when some
        projects failed; their URLs are listed in the printed summary.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _dispatch(args)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
