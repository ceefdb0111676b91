"""CLI for running the extraction pipeline and managing its sources.

Usage::

    # Run one extraction pass (the default command)
    python -m src.cli.run_extraction run
    python -m src.cli.run_extraction run --max-events 20

    # Print the ordered source plan and fetch strategies, then exit
    python -m src.cli.run_extraction run --dry-run

    # Mark runs stuck in 'running' as failed
    python -m src.cli.run_extraction reclaim --max-age-minutes 30

    # List configured sources
    python -m src.cli.run_extraction sources

    # Register a new source
    python -m src.cli.run_extraction add-source --name "Teatro Massimo" \\
        --url https://www.teatromassimo.it/calendario --kind location

Exit code is 0 on success and 1 when the run or command fails.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx

from src.main import (
    DEFAULT_CONFIG_PATH,
    build_content_fetcher,
    build_store,
    run_extraction_pipeline,
    setup,
)
from src.models.source import SourceKind
from src.pipeline.orchestrator import order_sources
from src.providers.content.headless_provider import BrowserSession
from src.utils.errors import EventScoutError


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_run(args: argparse.Namespace) -> int:
    """Run the pipeline, or print the plan with ``--dry-run``."""
    if args.dry_run:
        return await _handle_dry_run(args)

    stats = await run_extraction_pipeline(config_path=args.config, max_events=args.max_events)

    print()
    print("=" * 60)
    print("EXTRACTION RUN COMPLETE")
    print("=" * 60)
    for label, value in stats.labelled().items():
        print(f"  {label:<26} {value}")
    if stats.errors:
        print()
        print(f"Errors ({len(stats.errors)}):")
        for error in stats.errors:
            print(f"  - {error}")
    return 0


async def _handle_dry_run(args: argparse.Namespace) -> int:
    """Show which sources would be fetched, in order, and how."""
    _settings, config = setup(args.config)
    store = build_store(config)
    await store.initialize()
    sources = order_sources(await store.list_enabled_sources())

    if not sources:
        print("No event sources configured.")
        return 0

    session = BrowserSession() if config.get("fetch", {}).get("headless_enabled", True) else None
    async with httpx.AsyncClient() as client:
        fetcher = build_content_fetcher(config, client, session)
        cap = args.max_events or config.get("pipeline", {}).get("max_events_per_run", 100)
        print(f"Dry run: {len(sources)} source(s), max {cap} events\n")
        for position, source in enumerate(sources, start=1):
            chain = " -> ".join(fetcher.describe_strategy(source))
            print(
                f"  {position:>2}. {source.name} [{source.kind.value}, "
                f"reliability {source.reliability_score}]"
            )
            print(f"      {source.url}")
            print(f"      fetch: {chain}")
    return 0


async def _handle_reclaim(args: argparse.Namespace) -> int:
    """Mark stale 'running' run records as failed."""
    _settings, config = setup(args.config)
    store = build_store(config)
    await store.initialize()
    max_age = args.max_age_minutes or config.get("pipeline", {}).get("stuck_run_max_age_minutes", 30)
    count = await store.reclaim_stuck_runs(max_age)
    print(f"Reclaimed {count} stuck run(s) older than {max_age} minutes.")
    return 0


async def _handle_sources(args: argparse.Namespace) -> int:
    """List every configured source."""
    _settings, config = setup(args.config)
    store = build_store(config)
    await store.initialize()
    sources = await store.list_sources()
    if not sources:
        print("No event sources configured.")
        return 0

    print(f"{'NAME':<32} {'KIND':<12} {'REL':>4}  {'ENABLED':<8} URL")
    for source in sources:
        print(
            f"{source.name[:32]:<32} {source.kind.value:<12} {source.reliability_score:>4}  "
            f"{'yes' if source.enabled else 'no':<8} {source.url}"
        )
    return 0


async def _handle_add_source(args: argparse.Namespace) -> int:
    """Register a new event source."""
    kind = SourceKind(args.kind)
    if not args.url and not args.instagram_handle:
        print("Error: --url is required unless --instagram-handle is given.", file=sys.stderr)
        return 1

    _settings, config = setup(args.config)
    store = build_store(config)
    await store.initialize()
    source = await store.add_source(
        name=args.name,
        url=args.url or "",
        kind=kind,
        reliability_score=args.reliability,
        instagram_handle=args.instagram_handle,
    )
    print(f"Added source {source.name} ({source.kind.value}) -> {source.url}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the extraction CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.run_extraction",
        description="Extract events from configured sources into the eventScout store.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the YAML config (default: {DEFAULT_CONFIG_PATH})",
    )
    subparsers = parser.add_subparsers(dest="command", help="Extraction commands")

    # -- run --
    run_parser = subparsers.add_parser("run", help="Run one extraction pass")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the ordered source plan and fetch strategies, then exit",
    )
    run_parser.add_argument(
        "--max-events",
        type=int,
        default=None,
        help="Override max_events_per_run for this run",
    )

    # -- reclaim --
    reclaim_parser = subparsers.add_parser(
        "reclaim", help="Mark runs stuck in 'running' as failed"
    )
    reclaim_parser.add_argument(
        "--max-age-minutes",
        type=int,
        default=None,
        help="Age threshold (default: stuck_run_max_age_minutes setting)",
    )

    # -- sources --
    subparsers.add_parser("sources", help="List configured event sources")

    # -- add-source --
    add_parser = subparsers.add_parser("add-source", help="Register a new event source")
    add_parser.add_argument("--name", required=True, help="Display name")
    add_parser.add_argument("--url", default="", help="Page to fetch events from")
    add_parser.add_argument(
        "--kind",
        required=True,
        choices=[kind.value for kind in SourceKind],
        help="Source kind",
    )
    add_parser.add_argument(
        "--reliability",
        type=int,
        default=50,
        help="Reliability score 0-100 (default: 50)",
    )
    add_parser.add_argument(
        "--instagram-handle",
        default=None,
        help="Instagram handle; the profile URL is derived when --url is empty",
    )

    return parser


_HANDLERS = {
    "run": _handle_run,
    "reclaim": _handle_reclaim,
    "sources": _handle_sources,
    "add-source": _handle_add_source,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the extraction tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        base = sys.argv[1:] if argv is None else argv
        args = parser.parse_args([*base, "run"])

    try:
        exit_code = asyncio.run(_HANDLERS[args.command](args))
    except EventScoutError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
