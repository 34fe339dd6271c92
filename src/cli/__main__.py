# =============================================================================
# src/cli/__main__.py — Package Entry Point
# =============================================================================
#
# This file enables running the CLI package itself as a module:
#     python -m src.cli upload --tenant acme --file handbook.pdf
#
# All subcommands (upload, search, check) live in ingest.py.
# =============================================================================

"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.ingest import main

sys.exit(main())
