"""MCP tools for the codecite server.

This module defines the tools exposed by the MCP server:
- search: Hybrid search (vector + lexical + structural pins)
- ask: Grounded answer with verified citations
- list_repositories: What is indexed
- get_file: Chunks of one indexed file
- index_repository: Sync a configured repository (write tool)
"""

import asyncio
import logging
import threading

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from codecite.errors import ProviderError, QueryCancelled, SourceError
from codecite.indexer.models import RepoFilter
from codecite.retrieval.links import permalink
from codecite.services import Services

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 1200
MAX_K = 64


def _preview(text: str) -> str:
    return text[:PREVIEW_CHARS] + "…" if len(text) > PREVIEW_CHARS else text


def register_tools(mcp: FastMCP, services: Services) -> None:
    """Register all read tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        services: Built service graph
    """

    @mcp.tool()
    def search(query: str, k: int = 8, repos: list[str] | None = None) -> list[dict]:
        """Search indexed repositories for code and docs relevant to a query.

        Combines embedding similarity, fuzzy text similarity and literal
        matches against extracted endpoints, symbols and edges.

        Args:
            query: Natural-language or code query
            k: Number of results per signal (default: 8)
            repos: Optional list of org/repo names to restrict the search

        Returns:
            Ranked results with:
            - score: Fused relevance score (higher is better)
            - repo, path, symbol, start_line, end_line, revision
            - link: Revision-pinned permalink
            - preview: Matched text (truncated)
            - source: chunk, endpoint, symbol or edge
        """
        k = max(1, min(k, MAX_K))
        try:
            results = services.retriever.search(query, k, RepoFilter.from_list(repos))
        except ProviderError as e:
            raise ToolError(f"Search failed: {e}") from e

        return [
            {
                "score": round(item.score, 4),
                "repo": item.repo,
                "path": item.path,
                "symbol": item.symbol,
                "start_line": item.start_line,
                "end_line": item.end_line,
                "revision": item.revision,
                "link": item.link,
                "preview": _preview(item.preview),
                "source": item.source,
            }
            for item in results
        ]

    @mcp.tool()
    async def ask(
        question: str,
        k: int | None = None,
        repos: list[str] | None = None,
        hints: list[str] | None = None,
        aggressive: bool = False,
    ) -> dict:
        """Answer a question about the indexed code with verified citations.

        Args:
            question: The question to answer
            k: Base retrieval depth (default: configured, 16)
            repos: Optional list of org/repo names to restrict retrieval
            hints: Files that must be considered, as "org/repo:path" or "path"
            aggressive: Widen retrieval when fewer than 3 files are found

        Returns:
            - answer: Markdown answer with [n] citation markers
            - citations: List of {link, repo, path, start_line, end_line}; every
              link is one of the retrieved sources
        """
        if k is not None:
            k = max(1, min(k, MAX_K))
        cancel_event = threading.Event()
        try:
            result = await asyncio.to_thread(
                services.asker.ask,
                question,
                k=k,
                repo_filter=RepoFilter.from_list(repos),
                hints=hints,
                aggressive=aggressive,
                cancel_event=cancel_event,
            )
        except asyncio.CancelledError:
            # Provider calls not yet issued by the worker are skipped
            cancel_event.set()
            logger.info("ask cancelled: %r", question)
            raise
        except ValueError as e:
            raise ToolError(str(e)) from e
        except (ProviderError, QueryCancelled) as e:
            raise ToolError(f"Ask failed: {e}") from e
        return result.model_dump()

    @mcp.tool()
    def list_repositories() -> list[dict]:
        """List indexed repositories with document and chunk counts.

        Returns:
            List of {repo, documents, chunks, revisions, updated_at, configured}
        """
        repos = services.indexer.list_repositories()
        for summary in repos:
            summary["configured"] = summary["repo"] in services.sources
        indexed = {summary["repo"] for summary in repos}
        for repo in sorted(set(services.sources) - indexed):
            repos.append(
                {
                    "repo": repo,
                    "documents": 0,
                    "chunks": 0,
                    "revisions": [],
                    "updated_at": None,
                    "configured": True,
                }
            )
        return repos

    @mcp.tool()
    def get_file(repo: str, path: str) -> dict:
        """Read an indexed file as its ordered chunks.

        Args:
            repo: Repository name (org/repo)
            path: File path relative to the repository root

        Returns:
            Document with:
            - repo, path, revision, language, link
            - chunks: Ordered list of {ordinal, kind, symbol, start_line, end_line, text}
            - exists: Whether the file is indexed
            - error: Error message if not found
        """
        doc = services.indexer.get_document(repo, path.lstrip("/"))
        if doc is None:
            return {
                "repo": repo,
                "path": path,
                "chunks": [],
                "exists": False,
                "error": "Document not found",
            }

        chunks = [
            {
                "ordinal": c.ordinal,
                "kind": c.kind,
                "symbol": c.symbol,
                "start_line": c.start_line,
                "end_line": c.end_line,
                "text": c.text,
            }
            for c in services.indexer.get_chunks(doc.id)
        ]
        return {
            "repo": doc.repo,
            "path": doc.path,
            "revision": doc.revision,
            "language": doc.language,
            "link": permalink(services.config.link_host, doc.repo, doc.revision, doc.path),
            "chunks": chunks,
            "exists": True,
        }

    if services.config.read_only:
        logger.info("Read-only mode: index_repository not registered")
        return

    @mcp.tool()
    def index_repository(
        repo: str,
        revision: str | None = None,
        base_revision: str | None = None,
    ) -> dict:
        """Sync a configured repository into the index.

        Args:
            repo: Repository name (org/repo); must be configured
            revision: Revision to index (default: current head)
            base_revision: If given, only files changed since this revision are visited

        Returns:
            Counts of indexed, unchanged, skipped, failed and deleted files
        """
        source = services.sources.get(repo)
        if source is None:
            return {
                "repo": repo,
                "success": False,
                "error": f"Repository not configured: {repo}",
            }
        try:
            stats = services.indexer.sync_repository(
                source, repo, revision=revision, base_revision=base_revision
            )
        except SourceError as e:
            logger.warning("index_repository %s failed: %s", repo, e)
            return {"repo": repo, "success": False, "error": str(e)}

        return {
            "repo": repo,
            "success": True,
            "indexed": stats.indexed,
            "unchanged": stats.unchanged,
            "skipped": stats.skipped,
            "failed": stats.failed,
            "deleted": stats.deleted,
        }
