# =============================================================================
# src/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# This package provides the command-line interface for the knowledge base.
# It is the primary interface for operators who need to load documents,
# try queries, or reconcile storage outside of a host application.
#
#   ingest.py   — upload / search / check subcommands
#   __main__.py — makes `python -m src.cli` dispatch to ingest.main()
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer) to minimize external
#     dependencies.
#   - Components are built through src.main.build_knowledge_base so the CLI
#     and library callers share one wiring.
# =============================================================================

"""CLI tools for the knowledge base.

- ``python -m src.cli upload`` — store, chunk, embed and index a document
- ``python -m src.cli search`` — hybrid keyword + vector search
- ``python -m src.cli check`` — run the storage integrity checker
"""
