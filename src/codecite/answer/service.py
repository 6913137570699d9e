"""The ask pipeline: retrieval ladder, facts, synthesis."""

import logging
import threading

from codecite.answer.synthesizer import AnswerPayload, AnswerSynthesizer, not_enough_information
from codecite.errors import QueryCancelled
from codecite.indexer.database import Database
from codecite.indexer.models import RepoFilter
from codecite.retrieval.ladder import RetrievalLadder

logger = logging.getLogger(__name__)


class AskService:
    """Answers questions against the index with verified citations."""

    def __init__(self, db: Database, ladder: RetrievalLadder, synthesizer: AnswerSynthesizer):
        self.db = db
        self.ladder = ladder
        self.synthesizer = synthesizer

    def ask(
        self,
        question: str,
        k: int | None = None,
        repo_filter: RepoFilter | None = None,
        hints: list[str] | None = None,
        aggressive: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> AnswerPayload:
        """
        Answer a question.

        When retrieval selects nothing, the not-enough-information answer is
        returned without calling the chat model.
        """
        question = question.strip()
        if not question:
            raise ValueError("question must not be empty")

        result = self.ladder.run(
            question,
            k=k,
            repo_filter=repo_filter,
            hints=hints,
            aggressive=aggressive,
            cancel_event=cancel_event,
        )
        if not result.selected:
            logger.info("No sources for %r (passes: %s)", question, [s.value for s in result.trace])
            return not_enough_information()

        facts = self.db.collect_facts([item.document_id for item in result.selected])
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelled("Query cancelled before synthesis")
        return self.synthesizer.synthesize(question, result.selected, facts)
