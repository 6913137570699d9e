"""Main entry point for the codecite MCP server and CLI."""

import argparse
import json
import logging
import sys
from pathlib import Path

from fastmcp import FastMCP

from codecite.config import Config
from codecite.errors import CodeciteError
from codecite.indexer.models import RepoFilter
from codecite.services import Services, build_services
from codecite.sources import LocalSourceHost
from codecite.sync import SyncManager
from codecite.tools import register_tools

logger = logging.getLogger(__name__)


def create_server(config: Config, services: Services | None = None) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
        services: Prebuilt services; built from ``config`` when omitted.
    """
    mcp = FastMCP(
        name="codecite",
        instructions=(
            "codecite indexes source repositories and answers questions about them "
            "with citations that link to exact files and lines. Use search to find "
            "relevant code, ask for a grounded answer, and get_file to read an "
            "indexed file."
        ),
    )

    services = services or build_services(config)

    # Initial index when nothing has been indexed yet
    if services.sources and not services.indexer.list_repositories():
        logger.info("Database is empty, performing initial index...")
        results = services.indexer.sync_all(services.sources)
        logger.info("Initial index complete: %d repositories synced", len(results))

    logger.info("Registering tools...")
    register_tools(mcp, services)

    logger.info("Server configured successfully")
    return mcp


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def _serve(config: Config, args: argparse.Namespace) -> int:
    logger.info("=" * 50)
    logger.info("codecite starting...")
    logger.info("  DB:        %s", config.db_path)
    logger.info("  PORT:      %s", config.port)
    logger.info("  EMBED:     %s (%s)", config.embed_provider, config.embed_model)
    logger.info("  CHAT:      %s (%s)", config.chat_provider, config.chat_model)
    logger.info("  REPOS:     %s", ", ".join([*config.repo_roots, *config.github_repos]) or "none")
    logger.info("  READ_ONLY: %s", config.read_only)
    logger.info("=" * 50)

    services = build_services(config)
    if args.reindex:
        logger.info("Force reindex requested...")
        services.indexer.sync_all(services.sources)

    sync_manager: SyncManager | None = None
    try:
        mcp = create_server(config, services)
        if config.sync_interval > 0 and services.sources:
            sync_manager = SyncManager(services.indexer, services.sources, config.sync_interval)
            sync_manager.start()
        logger.info("Starting MCP server on port %s...", config.port)
        mcp.run(transport="sse", host=config.host, port=config.port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Server error")
        return 1
    finally:
        if sync_manager is not None:
            sync_manager.stop()
        services.close()
    return 0


def _index(config: Config, args: argparse.Namespace) -> int:
    sources = None
    if args.path:
        sources = {args.repo: LocalSourceHost({args.repo: Path(args.path).expanduser()})}
    services = build_services(config, sources=sources)
    try:
        source = services.sources.get(args.repo)
        if source is None:
            logger.error("Repository not configured: %s (set CODECITE_REPOS or pass --path)", args.repo)
            return 2
        stats = services.indexer.sync_repository(
            source, args.repo, revision=args.revision, base_revision=args.base
        )
        print(f"{args.repo}: {stats}")
        return 1 if stats.failed else 0
    finally:
        services.close()


def _search(config: Config, args: argparse.Namespace) -> int:
    services = build_services(config)
    try:
        results = services.retriever.search(args.query, args.k, RepoFilter.from_list(args.repo))
        _print_json([item.to_dict() for item in results])
        return 0
    finally:
        services.close()


def _ask(config: Config, args: argparse.Namespace) -> int:
    services = build_services(config)
    try:
        result = services.asker.ask(
            args.question,
            k=args.k,
            repo_filter=RepoFilter.from_list(args.repo),
            hints=args.hint,
            aggressive=args.aggressive,
        )
        _print_json(result.model_dump())
        return 0
    finally:
        services.close()


def _ingest_findings(config: Config, args: argparse.Namespace) -> int:
    services = build_services(config)
    try:
        count = services.indexer.ingest_findings(args.tool, Path(args.report), args.repo)
        print(f"Stored {count} findings for {args.repo}")
        return 0
    finally:
        services.close()


COMMANDS = {
    "serve": _serve,
    "index": _index,
    "search": _search,
    "ask": _ask,
    "ingest-findings": _ingest_findings,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="codecite - citation-grounded search and answers over source repositories"
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Run in read-only mode (disable write tools)",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the MCP server (default)")
    serve.add_argument(
        "--reindex",
        action="store_true",
        help="Sync all configured repositories before starting",
    )

    index = subparsers.add_parser("index", help="Sync one repository into the index")
    index.add_argument("repo", help="Repository name (org/repo)")
    index.add_argument("--path", help="Local checkout to index under this name")
    index.add_argument("--revision", help="Revision to index (default: current head)")
    index.add_argument("--base", help="Only visit files changed since this revision")

    search = subparsers.add_parser("search", help="Hybrid search")
    search.add_argument("query")
    search.add_argument("-k", type=int, default=8)
    search.add_argument("--repo", action="append", help="Restrict to a repository (repeatable)")

    ask = subparsers.add_parser("ask", help="Ask a question with cited answer")
    ask.add_argument("question")
    ask.add_argument("-k", type=int, default=None)
    ask.add_argument("--repo", action="append", help="Restrict to a repository (repeatable)")
    ask.add_argument("--hint", action="append", help="Force-include a file: org/repo:path or path")
    ask.add_argument("--aggressive", action="store_true", help="Widen retrieval more eagerly")

    ingest = subparsers.add_parser("ingest-findings", help="Store a static-analysis report")
    ingest.add_argument("tool", choices=["eslint", "semgrep"])
    ingest.add_argument("report", help="Path to the JSON report")
    ingest.add_argument("--repo", required=True, help="Repository the report belongs to")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main function - parses the command line and runs a command."""
    args = build_parser().parse_args(argv)

    # Create config once - CLI flag overrides env var
    try:
        config = Config.from_env(read_only_override=args.read_only if args.read_only else None)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    command = COMMANDS[args.command or "serve"]
    if args.command is None:
        args.reindex = False
    try:
        sys.exit(command(config, args))
    except CodeciteError as e:
        logger.error("%s failed: %s", args.command or "serve", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
