"""Tests for prompt assembly, answer synthesis and the ask pipeline."""

import threading
from unittest.mock import MagicMock

import pytest

from codecite.answer import NOT_ENOUGH_INFORMATION, AnswerPayload, AnswerSynthesizer, AskService, CitationPayload
from codecite.answer.prompt import MAX_ENDPOINT_FACTS, build_prompt, format_facts, format_source
from codecite.answer.synthesizer import verify_citations
from codecite.errors import ProviderError, QueryCancelled, StructuredOutputError
from codecite.indexer.models import Retrieved
from codecite.retrieval.hybrid import HybridRetriever
from codecite.retrieval.ladder import LadderResult, RetrievalLadder

LINK_A = "https://github.com/acme/api/blob/r1/src/a.ts#L1-L5"
LINK_B = "https://github.com/acme/api/blob/r1/src/b.ts#L3-L9"


def source(path: str, link: str, start: int | None = 1, end: int | None = 5, preview: str = "code") -> Retrieved:
    return Retrieved(
        score=0.9,
        repo="acme/api",
        path=path,
        revision="r1",
        document_id=1,
        source="chunk",
        source_id=1,
        symbol="handler",
        start_line=start,
        end_line=end,
        preview=preview,
        link=link,
    )


@pytest.fixture
def sources() -> list[Retrieved]:
    return [source("src/a.ts", LINK_A), source("src/b.ts", LINK_B, 3, 9)]


class TestPrompt:
    def test_sections_in_order(self, sources):
        system, user = build_prompt("How are users created?", sources)

        assert "Answer ONLY with facts grounded in the provided sources" in system
        assert user.index("QUESTION:") < user.index("SOURCES:") < user.index("CONTEXT:")
        assert "FACTS" not in user
        assert f"[1] {LINK_A}\n[2] {LINK_B}" in user
        assert "RESPONSE FORMAT (JSON)" in user

    def test_facts_section(self, sources):
        facts = {
            "endpoints": [
                {"repo": "acme/api", "path": "src/a.ts", "method": "POST", "route": "/users", "handler": "UsersController.create", "start": 17, "end": 22}
            ],
            "symbols": [],
            "edges": [],
            "findings": [],
        }
        _, user = build_prompt("q", sources, facts)

        assert "FACTS (from analysis):\nENDPOINTS:\n- POST /users -> UsersController.create @ acme/api/src/a.ts L17-22" in user

    def test_fact_limits(self):
        endpoints = [
            {"repo": "acme/api", "path": "a.ts", "method": "GET", "route": f"/r{i}", "handler": "h"}
            for i in range(MAX_ENDPOINT_FACTS + 10)
        ]
        text = format_facts({"endpoints": endpoints})
        assert text.count("\n- ") == MAX_ENDPOINT_FACTS

    def test_finding_and_edge_lines(self):
        text = format_facts(
            {
                "edges": [{"repo": "r/x", "path": "a.ts", "edge_type": "http.call", "to_kind": "url", "to_value": "http://svc", "start": 3, "end": 3}],
                "findings": [{"repo": "r/x", "path": "a.ts", "severity": "error", "rule_id": "no-eval", "message": "eval", "start": None, "end": None}],
            }
        )
        assert "EDGES:\n- http.call -> url:http://svc @ r/x/a.ts L3-3" in text
        assert "FINDINGS (high+):\n- error no-eval: eval @ r/x/a.ts" in text

    def test_format_facts_empty(self):
        assert format_facts(None) == ""
        assert format_facts({"endpoints": [], "symbols": []}) == ""

    def test_source_context_is_truncated(self):
        text = format_source(2, source("src/a.ts", LINK_A, preview="x" * 50), context_chars=10)
        assert text.startswith(f"SOURCE [2] acme/api/src/a.ts · handler · L1-5 {LINK_A}\n----\n")
        assert text.endswith("x" * 10 + "\n…")


class TestVerifyCitations:
    def test_drops_unknown_and_duplicate_links(self, sources):
        citations = [
            CitationPayload(link=LINK_B, repo="wrong/repo", path="wrong.ts", start_line=99),
            CitationPayload(link="https://evil.example.com/x", repo="acme/api", path="x.ts"),
            CitationPayload(link=LINK_B, repo="acme/api", path="src/b.ts"),
        ]

        verified = verify_citations(citations, sources)

        assert verified == [
            CitationPayload(link=LINK_B, repo="acme/api", path="src/b.ts", start_line=3, end_line=9)
        ]


class TestAnswerSynthesizer:
    def test_valid_answer(self, chat, sources):
        chat.generate_structured.return_value = AnswerPayload(
            answer="Users are created in the controller [1].",
            citations=[CitationPayload(link=LINK_A, repo="acme/api", path="src/a.ts")],
        )

        result = AnswerSynthesizer(chat).synthesize("How are users created?", sources)

        assert result.answer == "Users are created in the controller [1]."
        assert [c.link for c in result.citations] == [LINK_A]
        system, user, schema = chat.generate_structured.call_args.args
        assert schema is AnswerPayload
        assert "How are users created?" in user

    def test_every_citation_is_a_source(self, chat, sources):
        chat.generate_structured.return_value = AnswerPayload(
            answer="See [1] and [3].",
            citations=[
                CitationPayload(link=LINK_A, repo="acme/api", path="src/a.ts"),
                CitationPayload(link="https://github.com/acme/api/blob/r1/made-up.ts", repo="acme/api", path="made-up.ts"),
            ],
        )

        result = AnswerSynthesizer(chat).synthesize("q", sources)

        links = {s.link for s in sources}
        assert all(c.link in links for c in result.citations)
        assert result.answer == "See [1] and [3]."

    def test_no_markers_and_no_citations_is_not_enough_information(self, chat, sources):
        chat.generate_structured.return_value = AnswerPayload(answer="It probably works.", citations=[])
        result = AnswerSynthesizer(chat).synthesize("q", sources)
        assert result.answer == NOT_ENOUGH_INFORMATION
        assert result.citations == []

    def test_all_citations_invalid_without_markers(self, chat, sources):
        chat.generate_structured.return_value = AnswerPayload(
            answer="Answer without markers.",
            citations=[CitationPayload(link="https://nowhere.example.com", repo="x/y", path="z")],
        )
        result = AnswerSynthesizer(chat).synthesize("q", sources)
        assert result.answer == NOT_ENOUGH_INFORMATION

    def test_marker_keeps_answer_without_citations(self, chat, sources):
        chat.generate_structured.return_value = AnswerPayload(answer="Handled in [2].", citations=[])
        result = AnswerSynthesizer(chat).synthesize("q", sources)
        assert result.answer == "Handled in [2]."

    def test_malformed_reply_degrades_to_raw_text(self, chat, sources):
        chat.generate_structured.side_effect = StructuredOutputError(
            "not json", raw_text="Created by the service [1]."
        )
        result = AnswerSynthesizer(chat).synthesize("q", sources)
        assert result.answer == "Created by the service [1]."
        assert result.citations == []

    def test_provider_error_propagates(self, chat, sources):
        chat.generate_structured.side_effect = ProviderError("timeout")
        with pytest.raises(ProviderError):
            AnswerSynthesizer(chat).synthesize("q", sources)


class TestAskService:
    @pytest.fixture
    def service(self, indexed, embedder, chat):
        retriever = HybridRetriever(indexed.db, embedder)
        yield AskService(indexed.db, RetrievalLadder(retriever), AnswerSynthesizer(chat))
        retriever.close()

    def test_answers_with_verified_citations(self, service: AskService, chat):
        def reply(system, user, schema):
            # Cite whatever the first listed source is
            first_link = user.split("SOURCES:\n[1] ", 1)[1].split("\n", 1)[0]
            return schema(
                answer="POST /users is handled by UsersController.create [1].",
                citations=[{"link": first_link, "repo": "acme/api", "path": "ignored"}],
            )

        chat.generate_structured.side_effect = reply

        result = service.ask("POST /users create endpoint")

        assert result.answer.endswith("[1].")
        assert len(result.citations) == 1
        assert result.citations[0].path != "ignored"
        _, user, _ = chat.generate_structured.call_args.args
        assert "ENDPOINTS:" in user

    def test_empty_index_skips_chat(self, db, embedder, chat):
        retriever = HybridRetriever(db, embedder)
        try:
            service = AskService(db, RetrievalLadder(retriever), AnswerSynthesizer(chat))
            result = service.ask("How are users created?")
        finally:
            retriever.close()

        assert result.answer == NOT_ENOUGH_INFORMATION
        assert result.citations == []
        chat.generate_structured.assert_not_called()

    def test_empty_question(self, service: AskService):
        with pytest.raises(ValueError, match="question must not be empty"):
            service.ask("   ")

    def test_cancel_before_synthesis(self, db, chat):
        ladder = MagicMock()
        cancel = threading.Event()

        def run(*args, **kwargs):
            cancel.set()
            return LadderResult(selected=[source("src/a.ts", LINK_A)])

        ladder.run.side_effect = run
        service = AskService(db, ladder, AnswerSynthesizer(chat))

        with pytest.raises(QueryCancelled):
            service.ask("q", cancel_event=cancel)
        chat.generate_structured.assert_not_called()
