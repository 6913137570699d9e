"""Hybrid retriever: vector, lexical and structured-pin signals fused into one ranking."""

import logging
from concurrent.futures import ThreadPoolExecutor

from codecite.config import ScoreWeights
from codecite.indexer.database import Database, query_terms
from codecite.indexer.models import RepoFilter, Retrieved
from codecite.providers.base import Embedder
from codecite.retrieval.fusion import fuse
from codecite.retrieval.links import attach_links

logger = logging.getLogger(__name__)


class HybridRetriever:
    """
    Runs the search signals against the index and fuses them.

    The three signals of one query run concurrently on a small thread pool.
    They are read-only and each worker thread uses its own SQLite connection.
    """

    def __init__(
        self,
        db: Database,
        embedder: Embedder,
        weights: ScoreWeights | None = None,
        link_host: str = "https://github.com",
        lexical_limit: int = 64,
    ):
        self.db = db
        self.embedder = embedder
        self.weights = weights or ScoreWeights()
        self.link_host = link_host
        self.lexical_limit = lexical_limit
        self._executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="codecite-search")

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def search(self, query: str, top_k: int, repo_filter: RepoFilter | None = None) -> list[Retrieved]:
        """
        Embed the query and run the hybrid search.

        Returns ``[]`` without calling the embedding provider when the
        filtered index holds no chunks.

        Raises:
            ProviderError: The query could not be embedded.
        """
        repo_filter = repo_filter or RepoFilter.all_repos()
        query_vector = self.embed_query(query, repo_filter)
        if query_vector is None:
            return []
        return self.hybrid_search(query, query_vector, top_k, repo_filter)

    def embed_query(self, query: str, repo_filter: RepoFilter) -> list[float] | None:
        """The query vector, or None when there is nothing to search."""
        if not query.strip() or not self.db.has_chunks(repo_filter):
            return None
        return self.embedder.embed_one(query)

    def hybrid_search(
        self,
        query: str,
        query_vector: list[float],
        top_k: int,
        repo_filter: RepoFilter,
    ) -> list[Retrieved]:
        """Fuse the three signals for an already-embedded query."""
        w = self.weights
        vector = self._executor.submit(self.db.vector_search, query_vector, top_k, repo_filter)
        lexical = self._executor.submit(
            self.db.lexical_search, query, top_k, repo_filter, w.lexical_min_similarity
        )
        pins = self._executor.submit(self._pins, query, repo_filter)

        endpoint_pins, symbol_pins, edge_pins = pins.result()
        results = fuse(
            vector.result(),
            lexical.result(),
            endpoint_pins,
            symbol_pins,
            edge_pins,
            top_k,
            w,
        )
        logger.debug("Hybrid search for %r: %d results", query, len(results))
        return attach_links(results, self.link_host)

    def _pins(self, query: str, repo_filter: RepoFilter):
        terms = query_terms(query)
        w = self.weights
        return (
            self.db.endpoint_pins(terms, repo_filter, w.endpoint_pin_limit),
            self.db.symbol_pins(terms, repo_filter, w.symbol_pin_limit),
            self.db.edge_pins(terms, repo_filter, w.edge_pin_limit),
        )

    def search_lexical(self, query: str, repo_filter: RepoFilter | None = None) -> list[Retrieved]:
        """Pure lexical query; scores are the raw similarity."""
        repo_filter = repo_filter or RepoFilter.all_repos()
        results = self.db.lexical_search(
            query, self.lexical_limit, repo_filter, self.weights.lexical_min_similarity
        )
        return attach_links(results, self.link_host)

    def get_by_path(
        self,
        repo: str | None,
        path: str,
        limit: int,
        repo_filter: RepoFilter | None = None,
    ) -> list[Retrieved]:
        """Chunks of one file, unscored. ``repo=None`` means any repository in the filter."""
        return attach_links(self.db.get_by_path(repo, path, limit, repo_filter), self.link_host)
