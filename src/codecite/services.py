"""Wiring of the index, providers, retrieval and answer pipeline."""

import logging
from dataclasses import dataclass

from codecite.answer import AnswerSynthesizer, AskService
from codecite.config import Config
from codecite.indexer import Database, Indexer
from codecite.providers import ChatModel, Embedder, create_chat, create_embedder
from codecite.retrieval import HybridRetriever, RetrievalLadder
from codecite.sources import SourceHost, create_sources

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a server or CLI command needs, built once per process."""

    config: Config
    db: Database
    indexer: Indexer
    retriever: HybridRetriever
    ladder: RetrievalLadder
    asker: AskService
    sources: dict[str, SourceHost]

    def close(self) -> None:
        self.retriever.close()
        self.indexer.close()


def build_services(
    config: Config,
    embedder: Embedder | None = None,
    chat: ChatModel | None = None,
    sources: dict[str, SourceHost] | None = None,
) -> Services:
    """Build the service graph; providers and sources can be injected (tests)."""
    embedder = embedder or create_embedder(config)
    chat = chat or create_chat(config)

    logger.info("Initializing database at %s", config.db_path)
    db = Database(config.db_path)
    indexer = Indexer(db, embedder, max_file_bytes=config.max_file_bytes)
    indexer.initialize()

    retriever = HybridRetriever(
        db,
        embedder,
        weights=config.weights,
        link_host=config.link_host,
        lexical_limit=config.ladder.lexical_limit,
    )
    ladder = RetrievalLadder(retriever, config.ladder)
    synthesizer = AnswerSynthesizer(chat, context_chars=config.ladder.context_chars)
    asker = AskService(db, ladder, synthesizer)

    return Services(
        config=config,
        db=db,
        indexer=indexer,
        retriever=retriever,
        ladder=ladder,
        asker=asker,
        sources=sources if sources is not None else create_sources(config),
    )
