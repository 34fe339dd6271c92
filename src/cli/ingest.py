# =============================================================================
# src/cli/ingest.py — Knowledge-Base CLI (upload / search / check)
# =============================================================================
#
# Standalone CLI for operating a tenant knowledge base from the shell. Every
# subcommand builds the full component graph via src.main.build_knowledge_base
# (so the CLI always uses the same providers and defaults as a host process)
# and prints its result as JSON on stdout.
#
# Supported subcommands:
#
#   upload — Store, chunk, embed and index one file for a tenant
#   search — Hybrid keyword + vector search over a tenant's ready documents
#   check  — Run the integrity checker over stored documents
#
# Provider Selection (see src/main.py):
#   - Embedding: EMBEDDING_PROVIDER -> OpenAI (if key set) -> Ollama
#   - Storage:   local filesystem under STORAGE_ROOT (+ http when configured)
#   - Store:     SQLite at DATABASE_PATH
#
# Usage examples:
#   python -m src.cli upload --tenant acme --file handbook.pdf
#   python -m src.cli upload --tenant acme --file notes.md --strategy semantic --max-tokens 256
#   python -m src.cli search --tenant acme "refund policy for annual plans" --top-k 3
#   python -m src.cli check --backup-root /mnt/backup/storage
# =============================================================================

"""Command-line interface for the knowledge base.

Usage::

    python -m src.cli upload --tenant acme --file handbook.pdf

    python -m src.cli search --tenant acme "refund policy" --top-k 3

    python -m src.cli check --status ready --status stale

Exit status is 0 on success and 1 when a knowledge-base error is reported.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.main import KnowledgeBase, build_knowledge_base
from src.models.document import DocumentStatus
from src.models.ingestion import DocumentUploadRequest, IntegrityCheckOptions
from src.models.rag import ChunkerOptions, ChunkingStrategy
from src.providers.storage.local_storage_provider import LocalStorageProvider
from src.services.integrity.integrity_checker import BackupStorageRemediator
from src.utils.errors import KnowledgeBaseError
from src.utils.logging import configure_logging

_DEFAULT_MIME_TYPE = "application/octet-stream"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or _DEFAULT_MIME_TYPE


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    path = Path(args.file)
    data = path.read_bytes()

    chunker = None
    if args.strategy or args.max_tokens or args.overlap is not None:
        defaults = kb.chunker.defaults
        chunker = ChunkerOptions(
            strategy=args.strategy or defaults.strategy,
            max_tokens=args.max_tokens or defaults.max_tokens,
            overlap=args.overlap if args.overlap is not None else defaults.overlap,
        )

    document = await kb.pipeline.upload(
        DocumentUploadRequest(
            tenant_id=args.tenant,
            filename=args.filename or path.name,
            mime_type=args.mime_type or _guess_mime_type(path),
            data=data,
            metadata=json.loads(args.metadata) if args.metadata else None,
            document_id=args.document_id,
            chunker=chunker,
            storage_provider=args.storage,
            force=args.force,
        )
    )
    _print_json(document.model_dump(mode="json"))
    return 0


async def _handle_search(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    results = await kb.search(
        tenant_id=args.tenant,
        query=args.query,
        top_k=args.top_k,
        min_similarity=args.min_similarity,
    )
    _print_json([result.model_dump(mode="json") for result in results])
    return 0


async def _handle_check(args: argparse.Namespace, kb: KnowledgeBase) -> int:
    remediator = None
    if args.backup_root:
        remediator = BackupStorageRemediator(LocalStorageProvider(root_path=args.backup_root))

    statuses = [DocumentStatus(status) for status in args.status] if args.status else None
    options = IntegrityCheckOptions(
        batch_size=args.batch_size or kb.settings.integrity_batch_size,
        **({"statuses": statuses} if statuses else {}),
    )
    report = await kb.integrity.run(options, remediator=remediator)
    _print_json(report.model_dump(mode="json"))
    return 0


_HANDLERS = {
    "upload": _handle_upload,
    "search": _handle_search,
    "check": _handle_check,
}


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    async with build_knowledge_base(app_settings) as kb:
        return await _HANDLERS[args.command](args, kb)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge-base CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Upload, search and verify tenant knowledge-base documents.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Knowledge-base commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and index one document")
    upload_parser.add_argument("--tenant", required=True, help="Owning tenant id")
    upload_parser.add_argument("--file", required=True, help="Path to the document")
    upload_parser.add_argument("--filename", help="Stored filename (default: file's name)")
    upload_parser.add_argument(
        "--mime-type", dest="mime_type", help="MIME type (default: guessed from extension)"
    )
    upload_parser.add_argument(
        "--document-id", dest="document_id", help="Re-upload into this existing document"
    )
    upload_parser.add_argument("--storage", help="Storage provider name (default: configured)")
    upload_parser.add_argument(
        "--strategy",
        choices=[strategy.value for strategy in ChunkingStrategy],
        help="Chunking strategy",
    )
    upload_parser.add_argument("--max-tokens", dest="max_tokens", type=int, help="Chunk size")
    upload_parser.add_argument("--overlap", type=int, help="Fixed-window overlap in tokens")
    upload_parser.add_argument("--metadata", help="JSON object merged into document metadata")
    upload_parser.add_argument(
        "--force", action="store_true", help="Reprocess even if the bytes are unchanged"
    )

    # -- search --
    search_parser = subparsers.add_parser("search", help="Hybrid search over a tenant")
    search_parser.add_argument("--tenant", required=True, help="Tenant id to search")
    search_parser.add_argument("query", help="Natural-language query")
    search_parser.add_argument("--top-k", dest="top_k", type=int, help="Number of results")
    search_parser.add_argument(
        "--min-similarity", dest="min_similarity", type=float, help="Vector similarity floor"
    )

    # -- check --
    check_parser = subparsers.add_parser("check", help="Verify stored blobs against checksums")
    check_parser.add_argument("--batch-size", dest="batch_size", type=int, help="Page size")
    check_parser.add_argument(
        "--status",
        action="append",
        choices=[status.value for status in DocumentStatus],
        help="Document status to scan (repeatable, default: ready)",
    )
    check_parser.add_argument(
        "--backup-root",
        dest="backup_root",
        help="Local backup storage root used to restore missing or corrupted blobs",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Parses the subcommand, loads Settings from environment variables / .env,
    configures logging, and dispatches to the matching handler.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level, app_env=app_settings.app_env)

    try:
        return asyncio.run(_run(args, app_settings))
    except KnowledgeBaseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        # Bad --metadata JSON or out-of-range options rejected by the models.
        print(f"Error: invalid input: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
