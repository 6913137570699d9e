"""SQLite database management for the index."""

import json
import re
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import numpy as np

from codecite.indexer.models import (
    Chunk,
    Document,
    Edge,
    Endpoint,
    Facts,
    Finding,
    Retrieved,
    RepoFilter,
    Symbol,
)

SCHEMA_VERSION = "1.0"

SCHEMA_SQL = """
-- codecite Index Schema v1.0
-- This index is disposable: it regenerates from the source repositories

PRAGMA foreign_keys = ON;
PRAGMA journal_mode = WAL;

-- Documents: one row per (repo, revision, path)
CREATE TABLE IF NOT EXISTS documents (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    repo         TEXT NOT NULL,
    revision     TEXT NOT NULL,
    path         TEXT NOT NULL,
    language     TEXT,
    content_hash TEXT NOT NULL,
    created_at   TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at   TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (repo, revision, path)
);

CREATE INDEX IF NOT EXISTS idx_documents_repo_path ON documents(repo, path);
CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash);

-- Chunks: replaced as a whole generation whenever the document is re-indexed
CREATE TABLE IF NOT EXISTS chunks (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id  INTEGER NOT NULL,
    ordinal      INTEGER NOT NULL,
    text         TEXT NOT NULL,
    meta         TEXT NOT NULL DEFAULT '{}',
    kind         TEXT,
    symbol       TEXT,
    start_line   INTEGER,
    end_line     INTEGER,
    content_hash TEXT NOT NULL,
    embedding    BLOB,
    embed_model  TEXT,
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE,
    UNIQUE (document_id, ordinal)
);

CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id, ordinal);
CREATE INDEX IF NOT EXISTS idx_chunks_kind ON chunks(kind);

-- FTS5 virtual table (candidate selection for the lexical signal)
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    text,
    symbol,
    content='chunks',
    content_rowid='id'
);

-- Triggers to keep FTS5 synchronized
CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
    INSERT INTO chunks_fts(rowid, text, symbol)
    VALUES (NEW.id, NEW.text, NEW.symbol);
END;

CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, text, symbol)
    VALUES ('delete', OLD.id, OLD.text, OLD.symbol);
END;

CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE ON chunks BEGIN
    INSERT INTO chunks_fts(chunks_fts, rowid, text, symbol)
    VALUES ('delete', OLD.id, OLD.text, OLD.symbol);
    INSERT INTO chunks_fts(rowid, text, symbol)
    VALUES (NEW.id, NEW.text, NEW.symbol);
END;

-- Structural facts, cleared and regenerated per re-index
CREATE TABLE IF NOT EXISTS symbols (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL,
    kind        TEXT NOT NULL,
    name        TEXT NOT NULL,
    signature   TEXT,
    start_line  INTEGER,
    end_line    INTEGER,
    modifiers   TEXT NOT NULL DEFAULT '{}',
    meta        TEXT NOT NULL DEFAULT '{}',
    language    TEXT,
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_symbols_document ON symbols(document_id);
CREATE INDEX IF NOT EXISTS idx_symbols_name ON symbols(name);

CREATE TABLE IF NOT EXISTS endpoints (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id    INTEGER NOT NULL,
    protocol       TEXT NOT NULL DEFAULT 'http',
    method         TEXT,
    path           TEXT,
    handler_name   TEXT,
    start_line     INTEGER,
    end_line       INTEGER,
    decorators     TEXT NOT NULL DEFAULT '[]',
    request_shape  TEXT,
    response_shape TEXT,
    language       TEXT,
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_endpoints_document ON endpoints(document_id);

CREATE TABLE IF NOT EXISTS edges (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id      INTEGER NOT NULL,
    from_symbol_name TEXT,
    edge_type        TEXT NOT NULL,
    to_kind          TEXT NOT NULL,
    to_value         TEXT NOT NULL,
    start_line       INTEGER,
    end_line         INTEGER,
    method           TEXT NOT NULL DEFAULT 'heuristic',
    confidence       REAL NOT NULL DEFAULT 0.5,
    meta             TEXT NOT NULL DEFAULT '{}',
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_edges_document ON edges(document_id);

-- Findings survive re-indexing; they are re-linked to the live document
CREATE TABLE IF NOT EXISTS findings (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER,
    repo        TEXT,
    path        TEXT NOT NULL,
    tool        TEXT NOT NULL,
    rule_id     TEXT NOT NULL,
    severity    TEXT NOT NULL,
    message     TEXT NOT NULL DEFAULT '',
    start_line  INTEGER,
    end_line    INTEGER,
    fingerprint TEXT,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_findings_document ON findings(document_id);
CREATE INDEX IF NOT EXISTS idx_findings_repo_path ON findings(repo, path);

-- Metadata table for index versioning
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);

INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', '1.0');
INSERT OR IGNORE INTO meta (key, value) VALUES ('created_at', datetime('now'));
"""

# Query term separator for structured pins
TERM_SPLIT = re.compile(r"[^\w/.-]+")
MIN_TERM_LENGTH = 2

WORD_PATTERN = re.compile(r"\w+")

HIGH_SEVERITIES = ("error", "high", "critical")

_CHUNK_COLUMNS = """
    c.id AS chunk_id, c.document_id, c.text, c.kind, c.symbol, c.start_line,
    c.end_line, c.meta, d.repo, d.path, d.revision
"""


def query_terms(query: str) -> list[str]:
    """Lower-cased query terms used for structured pin matching."""
    terms = [t for t in TERM_SPLIT.split(query.lower()) if len(t) >= MIN_TERM_LENGTH]
    return list(dict.fromkeys(terms))


def trigrams(text: str) -> set[str]:
    """Word trigrams, padded the way pg_trgm pads them."""
    grams: set[str] = set()
    for word in WORD_PATTERN.findall(text.lower()):
        padded = f"  {word} "
        grams.update(padded[i : i + 3] for i in range(len(padded) - 2))
    return grams


def trigram_similarity(query: str, text: str) -> float:
    """Share of the query's trigrams that occur in the text (0..1)."""
    query_grams = trigrams(query)
    if not query_grams:
        return 0.0
    return len(query_grams & trigrams(text)) / len(query_grams)


def encode_vector(vector: list[float] | None) -> bytes | None:
    if vector is None:
        return None
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_vector(blob: bytes | None) -> np.ndarray | None:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32)


class Database:
    """SQLite database for the code index."""

    # Upper bound of FTS5 candidates scored per lexical query
    LEXICAL_CANDIDATES = 200

    def __init__(self, db_path):
        """Initialize database connection."""
        self.db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Each connection is used by the thread that opened it; close() may run elsewhere
            conn = sqlite3.connect(str(self.db_path), timeout=30, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            with self._connections_lock:
                self._connections.append(conn)
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking.

        Everything executed on the cursor commits together or not at all.
        """
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Initialize the database schema."""
        with self._write_cursor() as cursor:
            cursor.executescript(SCHEMA_SQL)

    def close(self) -> None:
        """Close the connections of every thread that used the database.

        Call after worker threads have stopped. A later call from any thread
        opens a fresh connection.
        """
        with self._connections_lock:
            connections, self._connections = self._connections, []
            self._local = threading.local()
        for conn in connections:
            conn.close()

    # Document operations

    def upsert_document(self, doc: Document) -> int:
        """Insert or update a document, returning its ID.

        Idempotent on (repo, revision, path): a colliding insert updates the
        content hash and language instead of creating a duplicate.
        """
        with self._write_cursor() as cursor:
            return self._upsert_document(cursor, doc)

    def _upsert_document(self, cursor: sqlite3.Cursor, doc: Document) -> int:
        cursor.execute(
            """INSERT INTO documents (repo, revision, path, language, content_hash)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(repo, revision, path) DO UPDATE SET
                language = excluded.language,
                content_hash = excluded.content_hash,
                updated_at = datetime('now')
            """,
            (doc.repo, doc.revision, doc.path, doc.language, doc.content_hash),
        )
        cursor.execute(
            "SELECT id FROM documents WHERE repo = ? AND revision = ? AND path = ?",
            (doc.repo, doc.revision, doc.path),
        )
        return cursor.fetchone()["id"]

    def get_document(self, document_id: int) -> Document | None:
        """Get a document by ID."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
            row = cursor.fetchone()
            return self._row_to_document(row) if row else None

    def get_latest_document(self, repo: str, path: str) -> Document | None:
        """Get the most recently indexed revision of a file."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT * FROM documents
                WHERE repo = ? AND path = ?
                ORDER BY updated_at DESC, id DESC
                LIMIT 1""",
                (repo, path),
            )
            row = cursor.fetchone()
            return self._row_to_document(row) if row else None

    def list_documents(self, repo: str | None = None) -> list[Document]:
        """List documents, optionally filtered by repository."""
        query = "SELECT * FROM documents WHERE 1=1"
        params: list = []
        if repo:
            query += " AND repo = ?"
            params.append(repo)
        query += " ORDER BY repo, path"

        with self._read_cursor() as cursor:
            cursor.execute(query, params)
            return [self._row_to_document(row) for row in cursor.fetchall()]

    def get_indexed_paths(self, repo: str) -> set[str]:
        """Get all indexed paths for a repository."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT DISTINCT path FROM documents WHERE repo = ?", (repo,))
            return {row["path"] for row in cursor.fetchall()}

    def delete_path(self, repo: str, path: str) -> int:
        """Delete every revision of a file. Chunks and facts cascade."""
        with self._write_cursor() as cursor:
            cursor.execute("DELETE FROM documents WHERE repo = ? AND path = ?", (repo, path))
            return cursor.rowcount

    def list_repositories(self) -> list[dict[str, Any]]:
        """Summarize indexed repositories."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT d.repo,
                    COUNT(DISTINCT d.id) AS documents,
                    COUNT(c.id) AS chunks,
                    MAX(d.updated_at) AS updated_at,
                    GROUP_CONCAT(DISTINCT d.revision) AS revisions
                FROM documents d
                LEFT JOIN chunks c ON c.document_id = d.id
                GROUP BY d.repo
                ORDER BY d.repo"""
            )
            return [
                {
                    "repo": row["repo"],
                    "documents": row["documents"],
                    "chunks": row["chunks"],
                    "revisions": sorted((row["revisions"] or "").split(",")),
                    "updated_at": row["updated_at"],
                }
                for row in cursor.fetchall()
            ]

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        """Convert a database row to a Document."""
        return Document(
            id=row["id"],
            repo=row["repo"],
            revision=row["revision"],
            path=row["path"],
            language=row["language"],
            content_hash=row["content_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # Chunk operations

    def replace_chunks(self, document_id: int, chunks: list[Chunk], embed_model: str | None = None) -> None:
        """Atomically replace all chunks of a document with a new generation."""
        with self._write_cursor() as cursor:
            self._replace_chunks(cursor, document_id, chunks, embed_model)

    def _replace_chunks(
        self,
        cursor: sqlite3.Cursor,
        document_id: int,
        chunks: list[Chunk],
        embed_model: str | None,
    ) -> None:
        cursor.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        cursor.executemany(
            """INSERT INTO chunks
            (document_id, ordinal, text, meta, kind, symbol, start_line, end_line,
             content_hash, embedding, embed_model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    document_id,
                    chunk.ordinal,
                    chunk.text,
                    json.dumps(chunk.meta),
                    chunk.kind,
                    chunk.symbol,
                    chunk.start_line,
                    chunk.end_line,
                    chunk.content_hash,
                    encode_vector(chunk.embedding),
                    embed_model if chunk.embedding is not None else None,
                )
                for chunk in chunks
            ],
        )

    def get_chunks(self, document_id: int) -> list[Chunk]:
        """Get all chunks for a document, in ordinal order."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT * FROM chunks WHERE document_id = ? ORDER BY ordinal",
                (document_id,),
            )
            chunks = []
            for row in cursor.fetchall():
                vector = decode_vector(row["embedding"])
                chunks.append(
                    Chunk(
                        id=row["id"],
                        document_id=row["document_id"],
                        ordinal=row["ordinal"],
                        text=row["text"],
                        meta=json.loads(row["meta"]),
                        content_hash=row["content_hash"],
                        embedding=vector.tolist() if vector is not None else None,
                    )
                )
            return chunks

    def get_chunk_embeddings(self, document_id: int, embed_model: str) -> dict[str, list[float]]:
        """Stored vectors of a document keyed by chunk content hash."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT content_hash, embedding FROM chunks
                WHERE document_id = ? AND embedding IS NOT NULL AND embed_model = ?""",
                (document_id, embed_model),
            )
            return {
                row["content_hash"]: decode_vector(row["embedding"]).tolist()
                for row in cursor.fetchall()
            }

    def has_chunks(self, repo_filter: RepoFilter | None = None) -> bool:
        """Whether any chunk exists within the filter."""
        repo_filter = repo_filter or RepoFilter.all_repos()
        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT 1 FROM chunks c JOIN documents d ON d.id = c.document_id
                WHERE 1=1{clause} LIMIT 1""",
                params,
            )
            return cursor.fetchone() is not None

    # Fact operations

    def clear_facts(self, document_id: int) -> None:
        """Delete symbols, endpoints and edges of a document."""
        with self._write_cursor() as cursor:
            self._clear_facts(cursor, document_id)

    def _clear_facts(self, cursor: sqlite3.Cursor, document_id: int) -> None:
        for table in ("symbols", "endpoints", "edges"):
            cursor.execute(f"DELETE FROM {table} WHERE document_id = ?", (document_id,))

    def insert_symbols(self, document_id: int, symbols: list[Symbol]) -> None:
        with self._write_cursor() as cursor:
            self._insert_symbols(cursor, document_id, symbols)

    def _insert_symbols(self, cursor: sqlite3.Cursor, document_id: int, symbols: list[Symbol]) -> None:
        cursor.executemany(
            """INSERT INTO symbols
            (document_id, kind, name, signature, start_line, end_line, modifiers, meta, language)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    document_id,
                    s.kind,
                    s.name,
                    s.signature,
                    s.start_line,
                    s.end_line,
                    json.dumps(s.modifiers),
                    json.dumps(s.meta),
                    s.language,
                )
                for s in symbols
            ],
        )

    def insert_endpoints(self, document_id: int, endpoints: list[Endpoint]) -> None:
        with self._write_cursor() as cursor:
            self._insert_endpoints(cursor, document_id, endpoints)

    def _insert_endpoints(
        self, cursor: sqlite3.Cursor, document_id: int, endpoints: list[Endpoint]
    ) -> None:
        cursor.executemany(
            """INSERT INTO endpoints
            (document_id, protocol, method, path, handler_name, start_line, end_line,
             decorators, request_shape, response_shape, language)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    document_id,
                    e.protocol,
                    e.method,
                    e.path,
                    e.handler_name,
                    e.start_line,
                    e.end_line,
                    json.dumps(e.decorators),
                    json.dumps(e.request_shape) if e.request_shape else None,
                    json.dumps(e.response_shape) if e.response_shape else None,
                    e.language,
                )
                for e in endpoints
            ],
        )

    def insert_edges(self, document_id: int, edges: list[Edge]) -> None:
        with self._write_cursor() as cursor:
            self._insert_edges(cursor, document_id, edges)

    def _insert_edges(self, cursor: sqlite3.Cursor, document_id: int, edges: list[Edge]) -> None:
        cursor.executemany(
            """INSERT INTO edges
            (document_id, from_symbol_name, edge_type, to_kind, to_value, start_line,
             end_line, method, confidence, meta)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    document_id,
                    e.from_symbol_name,
                    e.edge_type,
                    e.to_kind,
                    e.to_value,
                    e.start_line,
                    e.end_line,
                    e.method,
                    e.confidence,
                    json.dumps(e.meta),
                )
                for e in edges
            ],
        )

    def get_symbols(self, document_id: int) -> list[Symbol]:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM symbols WHERE document_id = ? ORDER BY id", (document_id,))
            return [
                Symbol(
                    id=row["id"],
                    document_id=row["document_id"],
                    kind=row["kind"],
                    name=row["name"],
                    signature=row["signature"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    modifiers=json.loads(row["modifiers"]),
                    meta=json.loads(row["meta"]),
                    language=row["language"],
                )
                for row in cursor.fetchall()
            ]

    def get_endpoints(self, document_id: int) -> list[Endpoint]:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM endpoints WHERE document_id = ? ORDER BY id", (document_id,))
            return [
                Endpoint(
                    id=row["id"],
                    document_id=row["document_id"],
                    protocol=row["protocol"],
                    method=row["method"],
                    path=row["path"],
                    handler_name=row["handler_name"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    decorators=json.loads(row["decorators"]),
                    request_shape=json.loads(row["request_shape"]) if row["request_shape"] else None,
                    response_shape=json.loads(row["response_shape"]) if row["response_shape"] else None,
                    language=row["language"],
                )
                for row in cursor.fetchall()
            ]

    def get_edges(self, document_id: int) -> list[Edge]:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM edges WHERE document_id = ? ORDER BY id", (document_id,))
            return [
                Edge(
                    id=row["id"],
                    document_id=row["document_id"],
                    from_symbol_name=row["from_symbol_name"],
                    edge_type=row["edge_type"],
                    to_kind=row["to_kind"],
                    to_value=row["to_value"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    method=row["method"],
                    confidence=row["confidence"],
                    meta=json.loads(row["meta"]),
                )
                for row in cursor.fetchall()
            ]

    def index_document(
        self,
        doc: Document,
        chunks: list[Chunk],
        facts: Facts,
        embed_model: str | None = None,
    ) -> int:
        """
        Write a document's new generation in one transaction.

        Upserts the document, replaces its chunks, clears and re-inserts its
        facts, removes other revisions of the same path and re-links findings.
        Any failure rolls everything back, leaving the previous state intact.
        """
        with self._write_cursor() as cursor:
            document_id = self._upsert_document(cursor, doc)
            cursor.execute(
                "DELETE FROM documents WHERE repo = ? AND path = ? AND id != ?",
                (doc.repo, doc.path, document_id),
            )
            self._replace_chunks(cursor, document_id, chunks, embed_model)
            self._clear_facts(cursor, document_id)
            self._insert_symbols(cursor, document_id, facts.symbols)
            self._insert_endpoints(cursor, document_id, facts.endpoints)
            self._insert_edges(cursor, document_id, facts.edges)
            cursor.execute(
                """UPDATE findings SET document_id = ?
                WHERE repo = ? AND path = ? AND document_id IS NULL""",
                (document_id, doc.repo, doc.path),
            )
            return document_id

    # Findings

    def resolve_path(self, repo: str, report_path: str) -> str | None:
        """Best-effort match of a report path to an indexed path (exact, then suffix)."""
        normalized = report_path.replace("\\", "/")
        exact = normalized[2:] if normalized.startswith("./") else normalized
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT path FROM documents WHERE repo = ? AND path = ? LIMIT 1",
                (repo, exact.lstrip("/")),
            )
            row = cursor.fetchone()
            if row:
                return row["path"]
            cursor.execute(
                """SELECT path FROM documents
                WHERE repo = ? AND ? LIKE '%/' || path
                ORDER BY length(path) DESC
                LIMIT 1""",
                (repo, normalized),
            )
            row = cursor.fetchone()
            return row["path"] if row else None

    def insert_findings(self, repo: str, findings: Iterable[Finding]) -> int:
        """Store findings, linking each to the live document of its path when one exists."""
        rows = []
        for finding in findings:
            path = self.resolve_path(repo, finding.path)
            document = self.get_latest_document(repo, path) if path else None
            rows.append(
                (
                    document.id if document else None,
                    repo,
                    path or finding.path,
                    finding.tool,
                    finding.rule_id,
                    finding.severity,
                    finding.message,
                    finding.start_line,
                    finding.end_line,
                    finding.fingerprint,
                )
            )
        with self._write_cursor() as cursor:
            cursor.executemany(
                """INSERT INTO findings
                (document_id, repo, path, tool, rule_id, severity, message, start_line,
                 end_line, fingerprint)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
        return len(rows)

    def get_findings(self, document_id: int) -> list[Finding]:
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM findings WHERE document_id = ? ORDER BY id", (document_id,))
            return [
                Finding(
                    id=row["id"],
                    document_id=row["document_id"],
                    repo=row["repo"],
                    path=row["path"],
                    tool=row["tool"],
                    rule_id=row["rule_id"],
                    severity=row["severity"],
                    message=row["message"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    fingerprint=row["fingerprint"],
                )
                for row in cursor.fetchall()
            ]

    def collect_facts(self, document_ids: list[int]) -> dict[str, list[dict[str, Any]]]:
        """Endpoints, symbols, edges and high-severity findings of the given documents."""
        facts: dict[str, list[dict[str, Any]]] = {
            "endpoints": [],
            "symbols": [],
            "edges": [],
            "findings": [],
        }
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return facts
        placeholders = ", ".join("?" for _ in ids)

        queries = {
            "endpoints": f"""SELECT d.repo, d.path, e.method, e.path AS route, e.handler_name AS handler,
                    e.start_line AS start, e.end_line AS "end"
                FROM endpoints e JOIN documents d ON d.id = e.document_id
                WHERE e.document_id IN ({placeholders}) ORDER BY e.id LIMIT 500""",
            "symbols": f"""SELECT d.repo, d.path, s.kind, s.name,
                    s.start_line AS start, s.end_line AS "end"
                FROM symbols s JOIN documents d ON d.id = s.document_id
                WHERE s.document_id IN ({placeholders}) ORDER BY s.id LIMIT 800""",
            "edges": f"""SELECT d.repo, d.path, e.edge_type, e.to_kind, e.to_value,
                    e.start_line AS start, e.end_line AS "end"
                FROM edges e JOIN documents d ON d.id = e.document_id
                WHERE e.document_id IN ({placeholders}) ORDER BY e.id LIMIT 800""",
            "findings": f"""SELECT d.repo, d.path, f.severity, f.rule_id, f.message,
                    f.start_line AS start, f.end_line AS "end"
                FROM findings f JOIN documents d ON d.id = f.document_id
                WHERE f.document_id IN ({placeholders})
                  AND lower(f.severity) IN ({", ".join("?" for _ in HIGH_SEVERITIES)})
                ORDER BY f.id LIMIT 400""",
        }
        with self._read_cursor() as cursor:
            for key, sql in queries.items():
                params: list = list(ids)
                if key == "findings":
                    params.extend(HIGH_SEVERITIES)
                cursor.execute(sql, params)
                facts[key] = [dict(row) for row in cursor.fetchall()]
        return facts

    # Search signals

    def vector_search(
        self,
        query_vector: list[float],
        top_k: int,
        repo_filter: RepoFilter,
    ) -> list[Retrieved]:
        """Rank chunks by cosine similarity to the query vector."""
        query = np.asarray(query_vector, dtype=np.float32)
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0 or top_k <= 0:
            return []

        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT c.id, c.embedding FROM chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE c.embedding IS NOT NULL{clause}""",
                params,
            )
            ids: list[int] = []
            vectors: list[np.ndarray] = []
            for row in cursor.fetchall():
                vector = decode_vector(row["embedding"])
                if vector is None or vector.shape != query.shape:
                    continue
                ids.append(row["id"])
                vectors.append(vector)

        if not vectors:
            return []

        matrix = np.vstack(vectors)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1.0
        scores = (matrix @ query) / (norms * query_norm)

        top = np.argsort(-scores, kind="stable")[:top_k]
        score_by_id = {ids[i]: float(scores[i]) for i in top}
        hydrated = self._hydrate_chunks(list(score_by_id))
        results = [hydrated[chunk_id] for chunk_id in score_by_id if chunk_id in hydrated]
        for item in results:
            item.score = score_by_id[item.source_id]
        return results

    def lexical_search(
        self,
        query: str,
        top_k: int,
        repo_filter: RepoFilter,
        min_similarity: float = 0.0,
    ) -> list[Retrieved]:
        """
        Rank chunks by fuzzy text similarity to the raw query.

        FTS5 selects candidates sharing at least one word with the query;
        each candidate is then scored by trigram similarity.
        """
        words = list(dict.fromkeys(w.lower() for w in WORD_PATTERN.findall(query)))
        if not words or top_k <= 0:
            return []
        match = " OR ".join('"' + w.replace('"', '""') + '"' for w in words)

        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT {_CHUNK_COLUMNS}
                FROM chunks_fts
                JOIN chunks c ON chunks_fts.rowid = c.id
                JOIN documents d ON d.id = c.document_id
                WHERE chunks_fts MATCH ?{clause}
                ORDER BY bm25(chunks_fts)
                LIMIT ?""",
                [match, *params, max(self.LEXICAL_CANDIDATES, top_k)],
            )
            rows = cursor.fetchall()

        results: list[Retrieved] = []
        for row in rows:
            similarity = trigram_similarity(query, row["text"])
            if similarity < min_similarity:
                continue
            item = self._row_to_retrieved(row)
            item.score = similarity
            results.append(item)

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]

    def endpoint_pins(self, terms: list[str], repo_filter: RepoFilter, limit: int = 60) -> list[Retrieved]:
        """Endpoints whose route, method or handler contains any query term."""
        if not terms:
            return []
        match_sql, match_params = _any_term(
            terms, ("lower(e.path)", "lower(e.method)", "lower(e.handler_name)")
        )
        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT e.*, d.repo, d.path AS doc_path, d.revision
                FROM endpoints e JOIN documents d ON d.id = e.document_id
                WHERE ({match_sql}){clause}
                ORDER BY e.id
                LIMIT ?""",
                [*match_params, *params, limit],
            )
            return [
                Retrieved(
                    score=0.0,
                    repo=row["repo"],
                    path=row["doc_path"],
                    revision=row["revision"],
                    document_id=row["document_id"],
                    source="endpoint",
                    source_id=row["id"],
                    symbol=row["handler_name"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    preview=f"{row['method'] or 'ALL'} {row['path'] or '/'} -> {row['handler_name']}",
                )
                for row in cursor.fetchall()
            ]

    def symbol_pins(self, terms: list[str], repo_filter: RepoFilter, limit: int = 60) -> list[Retrieved]:
        """Symbols whose name contains any query term."""
        if not terms:
            return []
        match_sql, match_params = _any_term(terms, ("lower(s.name)",))
        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT s.*, d.repo, d.path, d.revision
                FROM symbols s JOIN documents d ON d.id = s.document_id
                WHERE ({match_sql}){clause}
                ORDER BY s.id
                LIMIT ?""",
                [*match_params, *params, limit],
            )
            return [
                Retrieved(
                    score=0.0,
                    repo=row["repo"],
                    path=row["path"],
                    revision=row["revision"],
                    document_id=row["document_id"],
                    source="symbol",
                    source_id=row["id"],
                    symbol=row["name"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    preview=row["signature"] or f"{row['kind']}:{row['name']}",
                )
                for row in cursor.fetchall()
            ]

    def edge_pins(self, terms: list[str], repo_filter: RepoFilter, limit: int = 40) -> list[Retrieved]:
        """Edges whose target value or type contains any query term."""
        if not terms:
            return []
        match_sql, match_params = _any_term(terms, ("lower(e.to_value)", "lower(e.edge_type)"))
        clause, params = repo_filter.sql("d.repo")
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT e.*, d.repo, d.path, d.revision
                FROM edges e JOIN documents d ON d.id = e.document_id
                WHERE ({match_sql}){clause}
                ORDER BY e.id
                LIMIT ?""",
                [*match_params, *params, limit],
            )
            return [
                Retrieved(
                    score=0.0,
                    repo=row["repo"],
                    path=row["path"],
                    revision=row["revision"],
                    document_id=row["document_id"],
                    source="edge",
                    source_id=row["id"],
                    symbol=row["from_symbol_name"]
                    or f"{row['edge_type']}→{row['to_kind']}:{row['to_value']}",
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                    preview=f"{row['edge_type']} -> {row['to_kind']}:{row['to_value']}",
                )
                for row in cursor.fetchall()
            ]

    def get_by_path(
        self,
        repo: str | None,
        path: str,
        limit: int,
        repo_filter: RepoFilter | None = None,
    ) -> list[Retrieved]:
        """
        Chunks of a file by exact path, bypassing scoring.

        ``repo=None`` matches the path in any repository allowed by the
        filter. Regular chunks come before factsheets.
        """
        repo_filter = repo_filter or RepoFilter.all_repos()
        clause, params = repo_filter.sql("d.repo")
        query = f"""SELECT {_CHUNK_COLUMNS}
            FROM chunks c JOIN documents d ON d.id = c.document_id
            WHERE d.path = ?{clause}"""
        args: list = [path.lstrip("/"), *params]
        if repo is not None:
            query += " AND d.repo = ?"
            args.append(repo)
        query += " ORDER BY d.repo, (c.kind = 'factsheet'), c.ordinal LIMIT ?"
        args.append(limit)

        with self._read_cursor() as cursor:
            cursor.execute(query, args)
            return [self._row_to_retrieved(row) for row in cursor.fetchall()]

    def _hydrate_chunks(self, chunk_ids: list[int]) -> dict[int, Retrieved]:
        if not chunk_ids:
            return {}
        placeholders = ", ".join("?" for _ in chunk_ids)
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT {_CHUNK_COLUMNS}
                FROM chunks c JOIN documents d ON d.id = c.document_id
                WHERE c.id IN ({placeholders})""",
                chunk_ids,
            )
            return {row["chunk_id"]: self._row_to_retrieved(row) for row in cursor.fetchall()}

    def _row_to_retrieved(self, row: sqlite3.Row) -> Retrieved:
        """Convert a chunk row to an unscored Retrieved item."""
        meta = json.loads(row["meta"]) if row["meta"] else {}
        return Retrieved(
            score=0.0,
            repo=row["repo"],
            path=row["path"],
            revision=row["revision"],
            document_id=row["document_id"],
            source="chunk",
            source_id=row["chunk_id"],
            symbol=row["symbol"] or meta.get("title"),
            start_line=row["start_line"],
            end_line=row["end_line"],
            preview=row["text"],
            is_factsheet=row["kind"] == "factsheet",
        )


def _any_term(terms: list[str], columns: tuple[str, ...]) -> tuple[str, list[str]]:
    """SQL matching when any column contains any term (case-insensitive substring)."""
    clauses = []
    params: list[str] = []
    for term in terms:
        for column in columns:
            clauses.append(f"instr({column}, ?) > 0")
            params.append(term)
    return " OR ".join(clauses), params
