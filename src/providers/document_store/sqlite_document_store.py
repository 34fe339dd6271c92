"""SQLite-backed document and chunk store.

Persists :class:`~src.models.document.Document` and
:class:`~src.models.document.Chunk` records with ``aiosqlite``.  Three
tables live in one database file:

* ``documents`` -- one row per tenant-owned upload, unique on
  ``(tenant_id, filename)``.
* ``chunks`` -- one row per chunk, unique on ``(document_id, position)``.
  Embeddings are stored as a ``[v1,v2,...]`` literal, or ``NULL`` when the
  deployment runs without an embedding provider.
* ``chunks_fts`` -- an FTS5 index over chunk content, kept in step with
  ``chunks`` by :meth:`_SQLiteSession.insert_chunks` and
  :meth:`_SQLiteSession.delete_chunks`.

Every public method opens its own connection.  Connections run in
autocommit mode (``isolation_level=None``) and :meth:`transaction` issues
``BEGIN IMMEDIATE`` itself, so the write lock is taken up front and two
concurrent uploads serialise instead of deadlocking on lock upgrade.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np
import structlog

from src.interfaces.document_store import IDocumentSession, IDocumentStore
from src.models.document import Chunk, Document, DocumentStatus, utc_now
from src.models.rag import SearchHit
from src.utils.metadata import dump_metadata, parse_metadata

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge_base.db")

_CREATE_DOCUMENTS_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id               TEXT    PRIMARY KEY,
    tenant_id        TEXT    NOT NULL,
    filename         TEXT    NOT NULL,
    mime_type        TEXT    NOT NULL,
    size             INTEGER NOT NULL DEFAULT 0,
    path             TEXT    NOT NULL DEFAULT '',
    checksum         TEXT    NOT NULL DEFAULT '',
    storage_provider TEXT    NOT NULL,
    version          INTEGER NOT NULL DEFAULT 1,
    status           TEXT    NOT NULL,
    metadata         TEXT    NOT NULL DEFAULT '{}',
    created_at       TEXT    NOT NULL,
    updated_at       TEXT    NOT NULL,
    UNIQUE(tenant_id, filename)
);
"""

_CREATE_CHUNKS_SQL = """\
CREATE TABLE IF NOT EXISTS chunks (
    id          TEXT    PRIMARY KEY,
    tenant_id   TEXT    NOT NULL,
    document_id TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    content     TEXT    NOT NULL,
    embedding   TEXT,
    position    INTEGER NOT NULL,
    metadata    TEXT    NOT NULL DEFAULT '{}',
    UNIQUE(document_id, position)
);
"""

_CREATE_FTS_SQL = """\
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    chunk_id UNINDEXED,
    tenant_id UNINDEXED,
    content
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_status_id ON documents(status, id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_tenant ON chunks(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);",
]

_DOCUMENT_COLUMNS = (
    "id, tenant_id, filename, mime_type, size, path, checksum, storage_provider, "
    "version, status, metadata, created_at, updated_at"
)

_INSERT_DOCUMENT_SQL = f"""\
INSERT INTO documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_DOCUMENT_SQL = """\
UPDATE documents
SET mime_type = ?, size = ?, path = ?, checksum = ?, storage_provider = ?,
    version = ?, status = ?, metadata = ?, updated_at = ?
WHERE id = ?;
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO chunks (id, tenant_id, document_id, content, embedding, position, metadata)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_FTS_SQL = "INSERT INTO chunks_fts (chunk_id, tenant_id, content) VALUES (?, ?, ?);"

_DELETE_FTS_SQL = """\
DELETE FROM chunks_fts
WHERE chunk_id IN (SELECT id FROM chunks WHERE document_id = ?);
"""

_KEYWORD_SEARCH_SQL = """\
SELECT c.id AS chunk_id, c.document_id, c.content, c.position, c.metadata,
       -bm25(chunks_fts) AS score
FROM chunks_fts
JOIN chunks c ON c.id = chunks_fts.chunk_id
JOIN documents d ON d.id = c.document_id
WHERE chunks_fts MATCH ?
  AND chunks_fts.tenant_id = ?
  AND d.tenant_id = ?
  AND d.status = 'ready'
ORDER BY score DESC
LIMIT ?;
"""

_VECTOR_CANDIDATES_SQL = """\
SELECT c.id AS chunk_id, c.document_id, c.content, c.position, c.metadata, c.embedding
FROM chunks c
JOIN documents d ON d.id = c.document_id
WHERE c.tenant_id = ?
  AND d.tenant_id = ?
  AND d.status = 'ready'
  AND c.embedding IS NOT NULL;
"""

_QUERY_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


# ---------------------------------------------------------------------------
# Row conversion helpers
# ---------------------------------------------------------------------------

def vector_literal(embedding: Sequence[float] | None) -> str | None:
    """Render *embedding* as the ``[v1,v2,...]`` column literal, or ``None``."""
    if embedding is None:
        return None
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


def parse_vector(literal: str | None) -> list[float] | None:
    """Inverse of :func:`vector_literal`."""
    if not literal:
        return None
    return [float(v) for v in json.loads(literal)]


def build_match_expression(query: str) -> str:
    """Turn free text into an FTS5 expression matching any of its words.

    Each word is double-quoted so FTS5 operators and punctuation in user
    input are treated as literals.  Returns ``""`` when *query* has no words.
    """
    tokens = list(dict.fromkeys(t.lower() for t in _QUERY_TOKEN_RE.findall(query)))
    return " OR ".join(f'"{token}"' for token in tokens)


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        tenant_id=row["tenant_id"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        size=row["size"],
        path=row["path"],
        checksum=row["checksum"],
        storage_provider=row["storage_provider"],
        version=row["version"],
        status=DocumentStatus(row["status"]),
        metadata=parse_metadata(row["metadata"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_hit(row: aiosqlite.Row, score: float) -> SearchHit:
    return SearchHit(
        chunk_id=row["chunk_id"],
        document_id=row["document_id"],
        content=row["content"],
        position=row["position"],
        metadata=parse_metadata(row["metadata"]),
        score=score,
    )


# ---------------------------------------------------------------------------
# Transaction-bound session
# ---------------------------------------------------------------------------

class _SQLiteSession(IDocumentSession):
    """Document/chunk operations on a connection that is inside ``BEGIN``."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get_document(self, document_id: str, tenant_id: str | None = None) -> Document | None:
        if tenant_id is None:
            cursor = await self._db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
            )
        else:
            cursor = await self._db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ? AND tenant_id = ?",
                (document_id, tenant_id),
            )
        row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def find_document(self, tenant_id: str, filename: str) -> Document | None:
        cursor = await self._db.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE tenant_id = ? AND filename = ?",
            (tenant_id, filename),
        )
        row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def create_document(self, document: Document) -> Document:
        await self._db.execute(
            _INSERT_DOCUMENT_SQL,
            (
                document.id,
                document.tenant_id,
                document.filename,
                document.mime_type,
                document.size,
                document.path,
                document.checksum,
                document.storage_provider,
                document.version,
                document.status.value,
                dump_metadata(document.metadata),
                document.created_at.isoformat(),
                document.updated_at.isoformat(),
            ),
        )
        return document

    async def update_document(self, document: Document) -> Document:
        updated = document.model_copy(update={"updated_at": utc_now()})
        await self._db.execute(
            _UPDATE_DOCUMENT_SQL,
            (
                updated.mime_type,
                updated.size,
                updated.path,
                updated.checksum,
                updated.storage_provider,
                updated.version,
                updated.status.value,
                dump_metadata(updated.metadata),
                updated.updated_at.isoformat(),
                updated.id,
            ),
        )
        return updated

    async def delete_chunks(self, document_id: str) -> int:
        await self._db.execute(_DELETE_FTS_SQL, (document_id,))
        cursor = await self._db.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        return cursor.rowcount

    async def insert_chunks(self, chunks: Sequence[Chunk]) -> None:
        for chunk in chunks:
            await self._db.execute(
                _INSERT_CHUNK_SQL,
                (
                    chunk.id,
                    chunk.tenant_id,
                    chunk.document_id,
                    chunk.content,
                    vector_literal(chunk.embedding),
                    chunk.position,
                    dump_metadata(chunk.metadata),
                ),
            )
            await self._db.execute(_INSERT_FTS_SQL, (chunk.id, chunk.tenant_id, chunk.content))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SQLiteDocumentStore(IDocumentStore):
    """SQLite-backed knowledge-base store.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created on
        :meth:`initialize`.
    busy_timeout:
        Seconds a connection waits for another writer's lock before failing.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, busy_timeout: float = 30.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create tables, the FTS index, and secondary indices if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await db.execute(_CREATE_CHUNKS_SQL)
            await db.execute(_CREATE_FTS_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
        logger.info("document_store_initialized", path=str(self._db_path))

    async def close(self) -> None:
        # Connections are per-call; nothing is held between operations.
        return None

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(
            str(self._db_path), timeout=self._busy_timeout, isolation_level=None
        ) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[IDocumentSession]:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield _SQLiteSession(db)
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    # ------------------------------------------------------------------
    # Non-transactional helpers
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            return await _SQLiteSession(db).get_document(document_id)

    async def update_document(self, document: Document) -> Document:
        async with self.transaction() as session:
            return await session.update_document(document)

    async def list_documents(
        self,
        statuses: Sequence[DocumentStatus] | None = None,
        after_id: str | None = None,
        limit: int = 50,
    ) -> list[Document]:
        clauses: list[str] = []
        params: list[Any] = []
        if statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(DocumentStatus(s).value for s in statuses)
        if after_id is not None:
            clauses.append("id > ?")
            params.append(after_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents {where} ORDER BY id LIMIT ?",
                params,
            )
            rows = await cursor.fetchall()
        return [_row_to_document(row) for row in rows]

    async def get_chunks(self, document_id: str) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, tenant_id, document_id, content, embedding, position, metadata "
                "FROM chunks WHERE document_id = ? ORDER BY position",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [
            Chunk(
                id=row["id"],
                tenant_id=row["tenant_id"],
                document_id=row["document_id"],
                content=row["content"],
                embedding=parse_vector(row["embedding"]),
                position=row["position"],
                metadata=parse_metadata(row["metadata"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Search primitives
    # ------------------------------------------------------------------

    async def keyword_search(self, tenant_id: str, query: str, top_k: int) -> list[SearchHit]:
        expression = build_match_expression(query)
        if not expression or top_k <= 0:
            return []

        async with self._connect() as db:
            cursor = await db.execute(
                _KEYWORD_SEARCH_SQL, (expression, tenant_id, tenant_id, top_k)
            )
            rows = await cursor.fetchall()
        return [_row_to_hit(row, float(row["score"])) for row in rows]

    async def vector_search(
        self,
        tenant_id: str,
        embedding: Sequence[float],
        top_k: int,
        min_similarity: float,
    ) -> list[SearchHit]:
        query = np.asarray(embedding, dtype=np.float64)
        query_norm = float(np.linalg.norm(query))
        if top_k <= 0 or query.size == 0 or query_norm == 0.0:
            return []

        async with self._connect() as db:
            cursor = await db.execute(_VECTOR_CANDIDATES_SQL, (tenant_id, tenant_id))
            rows = await cursor.fetchall()

        candidates: list[tuple[aiosqlite.Row, np.ndarray]] = []
        for row in rows:
            vector = np.asarray(parse_vector(row["embedding"]), dtype=np.float64)
            if vector.shape != query.shape:
                logger.debug(
                    "vector_dimension_mismatch",
                    chunk_id=row["chunk_id"],
                    expected=query.size,
                    actual=vector.size,
                )
                continue
            candidates.append((row, vector))
        if not candidates:
            return []

        matrix = np.vstack([vector for _, vector in candidates])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0.0] = np.inf
        similarities = matrix @ query / (norms * query_norm)

        ranked = sorted(
            (
                (float(score), row)
                for score, (row, _) in zip(similarities, candidates)
                if score >= min_similarity
            ),
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [_row_to_hit(row, score) for score, row in ranked[:top_k]]
