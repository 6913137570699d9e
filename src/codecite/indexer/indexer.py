"""Main indexer that coordinates syncing repositories to SQLite."""

import hashlib
import logging
import sqlite3
import threading
from pathlib import Path

from codecite.errors import IndexingError, ProviderError, SourceError
from codecite.indexer.chunker import chunk
from codecite.indexer.database import Database
from codecite.indexer.facts import extract
from codecite.indexer.factsheet import build_factsheets
from codecite.indexer.findings import load_report
from codecite.indexer.models import Chunk, Document, SyncStats
from codecite.indexer.parser import language_from_path
from codecite.providers.base import Embedder
from codecite.sources.base import REMOVED, SourceHost
from codecite.sources.ignore import IgnoreRules, is_binary_path

logger = logging.getLogger(__name__)

INDEXED = "indexed"
UNCHANGED = "unchanged"


def compute_hash(content: bytes) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content).hexdigest()


class Indexer:
    """
    Indexer that syncs source repositories into the SQLite index.

    The repositories are always the source of truth. SQLite is a derived
    index that can be regenerated at any time.

    Thread Safety:
        Write operations (index_file, sync_repository, sync_all) are protected
        by a lock to prevent concurrent modifications. Read operations are safe
        to call from multiple threads as the Database uses thread-local connections.
    """

    def __init__(self, db: Database, embedder: Embedder, max_file_bytes: int = 1_500_000):
        """
        Initialize the indexer.

        Args:
            db: Database to write to
            embedder: Embedding provider for chunk texts
            max_file_bytes: Files larger than this are skipped during sync
        """
        self.db = db
        self.embedder = embedder
        self.max_file_bytes = max_file_bytes
        self._initialized = False
        self._write_lock = threading.RLock()

    def initialize(self) -> None:
        """Initialize the database schema."""
        self.db.initialize()
        self._initialized = True

    def close(self) -> None:
        """Close database connections."""
        self.db.close()

    def _ensure_initialized(self) -> None:
        """Ensure the database is initialized."""
        if not self._initialized:
            self.initialize()

    def index_file(self, repo: str, revision: str, path: str, content: str) -> str:
        """
        Index one file's content (thread-safe).

        Returns ``"unchanged"`` when the live document already has this exact
        content and vectors from the current embedding model, ``"indexed"``
        otherwise.

        Raises:
            ProviderError: Embedding failed; nothing was written.
            IndexingError: The write transaction failed and was rolled back.
        """
        self._ensure_initialized()
        with self._write_lock:
            return self._index_file(repo, revision, path, content)

    def _index_file(self, repo: str, revision: str, path: str, content: str) -> str:
        content_hash = compute_hash(content.encode("utf-8"))
        model = self.embedder.model_name

        existing = self.db.get_latest_document(repo, path)
        stored = self.db.get_chunk_embeddings(existing.id, model) if existing else {}
        if existing and existing.content_hash == content_hash and stored:
            logger.debug("Unchanged: %s:%s", repo, path)
            return UNCHANGED

        language = language_from_path(path)
        chunks = chunk(content, path, language)
        facts = extract(content, path, language)
        chunks.extend(build_factsheets(facts, path, start_ordinal=len(chunks)))

        for c in chunks:
            c.content_hash = compute_hash(c.text.encode("utf-8"))
        self._embed(chunks, stored)

        doc = Document(
            repo=repo,
            revision=revision,
            path=path,
            language=language,
            content_hash=content_hash,
        )
        try:
            self.db.index_document(doc, chunks, facts, embed_model=model)
        except sqlite3.Error as e:
            raise IndexingError(f"Failed to store {repo}:{path}: {e}", path=path, retryable=True) from e

        logger.debug(
            "Indexed %s:%s (%d chunks, %d symbols, %d endpoints, %d edges)",
            repo,
            path,
            len(chunks),
            len(facts.symbols),
            len(facts.endpoints),
            len(facts.edges),
        )
        return INDEXED

    def _embed(self, chunks: list[Chunk], stored: dict[str, list[float]]) -> None:
        """Embed all chunks in one batch, reusing vectors of unchanged chunk texts."""
        missing = [c for c in chunks if c.content_hash not in stored]
        vectors = self.embedder.embed_batch([c.text for c in missing]) if missing else []
        if len(vectors) != len(missing):
            raise ProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(missing)} chunks"
            )
        for c, vector in zip(missing, vectors):
            c.embedding = vector
        for c in chunks:
            if c.embedding is None:
                c.embedding = stored[c.content_hash]

    def sync_repository(
        self,
        source: SourceHost,
        repo: str,
        revision: str | None = None,
        base_revision: str | None = None,
    ) -> SyncStats:
        """
        Sync one repository from its source host.

        Without ``base_revision`` the whole tree at ``revision`` is indexed and
        documents of paths no longer present are deleted. With it, only the
        paths changed between the two revisions are visited.

        Per-file failures are logged and counted; they never abort the sync.
        """
        self._ensure_initialized()
        with self._write_lock:
            revision = revision or source.resolve_revision(repo)
            rules = IgnoreRules.from_gitignore(self._read_gitignore(source, repo, revision))
            stats = SyncStats()
            logger.info("Syncing %s@%s", repo, revision)

            if base_revision:
                for change in source.get_diff(repo, base_revision, revision):
                    if change.status == REMOVED:
                        stats.deleted += self.db.delete_path(repo, change.path)
                        continue
                    self._sync_path(source, repo, revision, change.path, None, rules, stats)
            else:
                kept: set[str] = set()
                for source_file in source.list_tree(repo, revision):
                    if self._sync_path(
                        source, repo, revision, source_file.path, source_file.size, rules, stats
                    ):
                        kept.add(source_file.path)
                for path in self.db.get_indexed_paths(repo) - kept:
                    stats.deleted += self.db.delete_path(repo, path)

            logger.info("Sync of %s complete: %s", repo, stats)
            return stats

    def _sync_path(
        self,
        source: SourceHost,
        repo: str,
        revision: str,
        path: str,
        size: int | None,
        rules: IgnoreRules,
        stats: SyncStats,
    ) -> bool:
        """Fetch and index one path. Returns False if the path is not indexable."""
        if rules.is_ignored(path) or is_binary_path(path):
            stats.skipped += 1
            return False
        if size is not None and size > self.max_file_bytes:
            logger.debug("Skipping large file %s:%s (%d bytes)", repo, path, size)
            stats.skipped += 1
            return False

        try:
            data = source.get_file_content(repo, path, revision)
        except SourceError as e:
            logger.warning("Cannot fetch %s:%s: %s", repo, path, e)
            stats.failed += 1
            return True

        if len(data) > self.max_file_bytes:
            stats.skipped += 1
            return False
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("Skipping file with invalid UTF-8 encoding: %s:%s (%s)", repo, path, e)
            stats.skipped += 1
            return False
        if not content.strip():
            stats.skipped += 1
            return False

        try:
            result = self._index_file(repo, revision, path, content)
        except (ProviderError, IndexingError) as e:
            logger.warning("Failed to index %s:%s: %s", repo, path, e)
            stats.failed += 1
            return True
        except Exception:
            logger.exception("Unexpected error indexing %s:%s", repo, path)
            stats.failed += 1
            return True

        if result == UNCHANGED:
            stats.unchanged += 1
        else:
            stats.indexed += 1
        return True

    def _read_gitignore(self, source: SourceHost, repo: str, revision: str) -> str | None:
        try:
            return source.get_file_content(repo, ".gitignore", revision).decode("utf-8", "replace")
        except SourceError:
            return None

    def sync_all(self, sources: dict[str, SourceHost]) -> dict[str, SyncStats]:
        """Full sync of every configured repository; one failing repo does not stop the rest."""
        results: dict[str, SyncStats] = {}
        for repo, source in sources.items():
            try:
                results[repo] = self.sync_repository(source, repo)
            except SourceError as e:
                logger.error("Sync of %s failed: %s", repo, e)
        return results

    def ingest_findings(self, tool: str, report_path: Path, repo: str) -> int:
        """Load a static-analysis report and store its findings."""
        self._ensure_initialized()
        findings = load_report(tool, report_path, repo)
        with self._write_lock:
            count = self.db.insert_findings(repo, findings)
        logger.info("Stored %d %s findings for %s", count, tool, repo)
        return count

    # Query methods

    def list_repositories(self) -> list[dict]:
        """Summaries of all indexed repositories."""
        self._ensure_initialized()
        return self.db.list_repositories()

    def get_document(self, repo: str, path: str) -> Document | None:
        """Get the live document for a path."""
        self._ensure_initialized()
        return self.db.get_latest_document(repo, path)

    def get_chunks(self, document_id: int) -> list[Chunk]:
        """Get all chunks for a document."""
        self._ensure_initialized()
        return self.db.get_chunks(document_id)
