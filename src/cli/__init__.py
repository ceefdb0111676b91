# =============================================================================
# src/cli/__init__.py - CLI Module Overview
# =============================================================================
#
# Command-line entry points for eventScout.  The pipeline is meant to be
# triggered by a scheduler (cron, a container job), so the CLI is the
# primary operator interface:
#
#   run         One extraction pass over every enabled source.
#               --dry-run prints the ordered plan and exits.
#   reclaim     Marks run records stuck in 'running' as failed.
#   sources     Lists configured sources.
#   add-source  Registers a new aggregator / venue / organizer / Instagram
#               source.
#
# Architecture Notes:
#   - argparse, not Click/Typer, like the rest of the tooling.
#   - Every handler builds its own dependencies through src.main, since
#     each invocation is a one-shot process.
# =============================================================================

"""CLI tools for the eventScout extraction pipeline.

- ``python -m src.cli`` - same as ``python -m src.cli.run_extraction``.
- ``python -m src.cli.run_extraction run|reclaim|sources|add-source``.
"""
