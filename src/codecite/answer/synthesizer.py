"""Structured answer synthesis with citation verification."""

import logging
import re

from pydantic import BaseModel, Field

from codecite.answer.prompt import build_prompt
from codecite.errors import StructuredOutputError
from codecite.indexer.models import Retrieved
from codecite.providers.base import ChatModel

logger = logging.getLogger(__name__)

NOT_ENOUGH_INFORMATION = "Not enough information in the provided sources."

CITATION_MARKER = re.compile(r"\[\d+\]")


class CitationPayload(BaseModel):
    link: str
    repo: str
    path: str
    start_line: int | None = None
    end_line: int | None = None


class AnswerPayload(BaseModel):
    answer: str
    citations: list[CitationPayload] = Field(default_factory=list)


def not_enough_information() -> AnswerPayload:
    return AnswerPayload(answer=NOT_ENOUGH_INFORMATION, citations=[])


def verify_citations(
    citations: list[CitationPayload], sources: list[Retrieved]
) -> list[CitationPayload]:
    """Keep only citations whose link is one of the sources, rebuilt from that source."""
    by_link = {source.link: source for source in sources}
    verified: list[CitationPayload] = []
    seen: set[str] = set()
    for citation in citations:
        source = by_link.get(citation.link)
        if source is None:
            logger.debug("Dropping citation not in sources: %s", citation.link)
            continue
        if source.link in seen:
            continue
        seen.add(source.link)
        verified.append(
            CitationPayload(
                link=source.link,
                repo=source.repo,
                path=source.path,
                start_line=source.start_line,
                end_line=source.end_line,
            )
        )
    return verified


class AnswerSynthesizer:
    """Builds the prompt, asks the chat model and verifies what comes back."""

    def __init__(self, chat: ChatModel, context_chars: int = 1600):
        self.chat = chat
        self.context_chars = context_chars

    def synthesize(
        self,
        question: str,
        sources: list[Retrieved],
        facts: dict | None = None,
    ) -> AnswerPayload:
        """
        Answer ``question`` from ``sources``.

        A reply that does not match the schema degrades to its raw text with
        no citations. Citations outside ``sources`` are dropped. An answer
        with neither a ``[n]`` marker nor a surviving citation is replaced by
        the not-enough-information message.

        Raises:
            ProviderError: The chat call itself failed.
        """
        system, user = build_prompt(question, sources, facts, self.context_chars)
        try:
            payload = self.chat.generate_structured(system, user, AnswerPayload)
        except StructuredOutputError as e:
            logger.warning("Structured answer invalid, using raw text: %s", e)
            payload = AnswerPayload(answer=e.raw_text, citations=[])

        citations = verify_citations(payload.citations, sources)
        answer = payload.answer.strip()
        if not CITATION_MARKER.search(answer) and not citations:
            answer = NOT_ENOUGH_INFORMATION
        return AnswerPayload(answer=answer, citations=citations)
