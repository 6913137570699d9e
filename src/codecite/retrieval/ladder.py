"""
Multi-pass retrieval with progressive relaxation.

The ladder is a small state machine. Each state runs one pass and decides
the next state from what has been collected so far:

    BASE -> WIDENED -> LEXICAL_FALLBACK -> HINTED -> DONE

BASE and WIDENED are skipped forward to HINTED as soon as enough results
are collected. HINTED always runs; it only does work when the caller
supplied path hints.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from codecite.config import LadderSettings
from codecite.errors import ProviderError, QueryCancelled
from codecite.indexer.models import RepoFilter, Retrieved
from codecite.retrieval.hybrid import HybridRetriever
from codecite.retrieval.links import parse_path_hints

logger = logging.getLogger(__name__)


class LadderState(Enum):
    BASE = "base"
    WIDENED = "widened"
    LEXICAL_FALLBACK = "lexical_fallback"
    HINTED = "hinted"
    DONE = "done"


def file_key(item: Retrieved) -> tuple[str, str]:
    return (item.repo, item.path)


def unique_by_file(items: list[Retrieved]) -> list[Retrieved]:
    """One item per (repo, path), keeping the highest score; sorted by score."""
    ordered = sorted(items, key=lambda item: item.score, reverse=True)
    seen: set[tuple[str, str]] = set()
    unique: list[Retrieved] = []
    for item in ordered:
        key = file_key(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def prune(items: list[Retrieved], min_score: float) -> list[Retrieved]:
    return unique_by_file([item for item in items if item.score >= min_score])


@dataclass
class LadderResult:
    """Selected sources plus a record of how they were found."""

    selected: list[Retrieved]
    trace: list[LadderState] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


@dataclass
class _Run:
    question: str
    k: int
    repo_filter: RepoFilter
    hints: list[str]
    aggressive: bool
    cancel_event: threading.Event | None
    query_vector: list[float] | None = None
    raw: list[Retrieved] = field(default_factory=list)
    pruned: list[Retrieved] = field(default_factory=list)
    hinted_keys: set[tuple[str, str]] = field(default_factory=set)
    failures: list[str] = field(default_factory=list)


class RetrievalLadder:
    """Orchestrates retrieval passes for one question."""

    def __init__(self, retriever: HybridRetriever, settings: LadderSettings | None = None):
        self.retriever = retriever
        self.settings = settings or LadderSettings()
        self._handlers: dict[LadderState, Callable[[_Run], LadderState]] = {
            LadderState.BASE: self._base,
            LadderState.WIDENED: self._widened,
            LadderState.LEXICAL_FALLBACK: self._lexical_fallback,
            LadderState.HINTED: self._hinted,
        }

    def run(
        self,
        question: str,
        k: int | None = None,
        repo_filter: RepoFilter | None = None,
        hints: list[str] | None = None,
        aggressive: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> LadderResult:
        """
        Run the ladder and select the final sources.

        Raises:
            QueryCancelled: ``cancel_event`` was set before a pass started.
        """
        k = k or self.settings.default_k
        if k <= 0:
            raise ValueError("k must be positive")
        run = _Run(
            question=question,
            k=k,
            repo_filter=repo_filter or RepoFilter.all_repos(),
            hints=hints or [],
            aggressive=aggressive,
            cancel_event=cancel_event,
        )

        trace: list[LadderState] = []
        state = LadderState.BASE
        while state is not LadderState.DONE:
            if cancel_event is not None and cancel_event.is_set():
                raise QueryCancelled(f"Query cancelled before {state.value} pass")
            trace.append(state)
            state = self._handlers[state](run)
        trace.append(LadderState.DONE)

        selected = self._select(run)
        logger.debug(
            "Ladder for %r: %s -> %d sources",
            question,
            " -> ".join(s.value for s in trace),
            len(selected),
        )
        return LadderResult(selected=selected, trace=trace, failures=run.failures)

    def _under_produced(self, run: _Run) -> bool:
        if not run.pruned:
            return True
        return run.aggressive and len(run.pruned) < self.settings.aggressive_min

    def _search(self, run: _Run, k: int, state: LadderState) -> list[Retrieved]:
        """
        One hybrid search. The question is embedded by the first pass that
        succeeds and reused after that; a provider failure fails this pass only.
        """
        if run.query_vector is None:
            try:
                run.query_vector = self.retriever.embed_query(run.question, run.repo_filter)
            except ProviderError as e:
                logger.warning("Retrieval pass %s failed: %s", state.value, e)
                run.failures.append(f"{state.value}: {e}")
                return []
            if run.query_vector is None:
                return []
        return self.retriever.hybrid_search(run.question, run.query_vector, k, run.repo_filter)

    def _base(self, run: _Run) -> LadderState:
        run.raw = self._search(run, run.k, LadderState.BASE)
        run.pruned = prune(run.raw, self.settings.base_threshold)
        return LadderState.WIDENED if self._under_produced(run) else LadderState.HINTED

    def _widened(self, run: _Run) -> LadderState:
        wide_k = max(self.settings.widen_min_k, run.k * 2)
        more = self._search(run, wide_k, LadderState.WIDENED)
        run.pruned = prune(run.raw + more, self.settings.widen_threshold)
        return LadderState.LEXICAL_FALLBACK if self._under_produced(run) else LadderState.HINTED

    def _lexical_fallback(self, run: _Run) -> LadderState:
        lexical = self.retriever.search_lexical(run.question, run.repo_filter)
        run.pruned = prune(run.pruned + lexical, 0.0)
        return LadderState.HINTED

    def _hinted(self, run: _Run) -> LadderState:
        forced: list[Retrieved] = []
        for hint in parse_path_hints(run.hints):
            repo = None if hint.any_repo else hint.repo
            if repo is not None and not run.repo_filter.allows(repo):
                continue
            forced.extend(
                self.retriever.get_by_path(
                    repo, hint.path, self.settings.hint_chunk_limit, run.repo_filter
                )
            )
        for item in forced:
            item.score = max(item.score, self.settings.hint_score)
            run.hinted_keys.add(file_key(item))
        if forced:
            run.pruned = unique_by_file(forced + run.pruned)
        return LadderState.DONE

    def _select(self, run: _Run) -> list[Retrieved]:
        """Top ``final_limit`` by score, with a guaranteed slot for every hinted file."""
        limit = self.settings.final_limit
        hinted = [item for item in run.pruned if file_key(item) in run.hinted_keys][:limit]
        natural = [item for item in run.pruned if file_key(item) not in run.hinted_keys]
        selected = hinted + natural[: limit - len(hinted)]
        selected.sort(key=lambda item: item.score, reverse=True)
        return selected
