# =============================================================================
# src/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables ``python -m src.cli``; delegates to the extraction CLI, whose
# default subcommand is ``run``.
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

from src.cli.run_extraction import main

main()
