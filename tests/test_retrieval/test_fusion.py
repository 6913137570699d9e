"""Tests for score fusion."""

import pytest

from codecite.config import ScoreWeights
from codecite.indexer.models import Retrieved
from codecite.retrieval.fusion import fuse


def item(path: str, score: float = 0.0, source: str = "chunk", is_factsheet: bool = False) -> Retrieved:
    return Retrieved(
        score=score,
        repo="acme/api",
        path=path,
        revision="r1",
        document_id=1,
        source=source,
        source_id=len(path),
        is_factsheet=is_factsheet,
    )


@pytest.fixture
def weights() -> ScoreWeights:
    return ScoreWeights()


def test_vector_scores_with_factsheet_boost(weights):
    results = fuse([item("a.ts", 0.5), item("b.ts", 0.5, is_factsheet=True)], [], [], [], [], 8, weights)

    assert [r.path for r in results] == ["b.ts", "a.ts"]
    assert results[0].score == pytest.approx(0.58)
    assert results[1].score == pytest.approx(0.5)


def test_lexical_scores_get_base(weights):
    results = fuse([], [item("a.ts", 0.4)], [], [], [], 8, weights)
    assert results[0].score == pytest.approx(0.75)


def test_pin_scores_by_type(weights):
    results = fuse(
        [],
        [],
        [item("e.ts", source="endpoint")],
        [item("s.ts", source="symbol")],
        [item("g.ts", source="edge")],
        8,
        weights,
    )
    assert [(r.path, r.score) for r in results] == [("e.ts", 0.85), ("s.ts", 0.78), ("g.ts", 0.72)]


def test_inputs_are_not_mutated(weights):
    hit = item("a.ts", 0.4)
    fuse([], [hit], [], [], [], 8, weights)
    assert hit.score == 0.4


def test_duplicates_are_kept_and_ties_keep_signal_order(weights):
    tuned = ScoreWeights(endpoint_pin=0.5)
    results = fuse([item("a.ts", 0.5)], [], [item("a.ts", source="endpoint")], [], [], 8, tuned)

    assert [r.source for r in results] == ["chunk", "endpoint"]


def test_truncates_to_result_floor(weights):
    hits = [item(f"f{i}.ts", i / 100) for i in range(40)]

    assert len(fuse(hits, [], [], [], [], 4, weights)) == 24
    assert len(fuse(hits, [], [], [], [], 30, weights)) == 30
    assert fuse(hits, [], [], [], [], 4, weights)[0].path == "f39.ts"


def test_endpoint_pin_outranks_weak_vector_hit(weights):
    results = fuse(
        [item("README.md", 0.3)],
        [],
        [item("src/users/users.controller.ts", source="endpoint")],
        [],
        [],
        8,
        weights,
    )
    assert results[0].source == "endpoint"
