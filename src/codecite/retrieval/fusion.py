"""Score fusion for the hybrid retriever."""

from dataclasses import replace

from codecite.config import ScoreWeights
from codecite.indexer.models import Retrieved


def fuse(
    vector_hits: list[Retrieved],
    lexical_hits: list[Retrieved],
    endpoint_pins: list[Retrieved],
    symbol_pins: list[Retrieved],
    edge_pins: list[Retrieved],
    top_k: int,
    weights: ScoreWeights,
) -> list[Retrieved]:
    """
    Merge the three signals into one ranked list.

    Vector hits keep their cosine score, plus ``factsheet_boost`` for
    factsheet chunks. Lexical hits score ``lexical_base + similarity``.
    Pins get a fixed base score per type. The merged list is sorted by
    score (stable, so equal scores keep signal order) and truncated to
    ``max(top_k, result_floor)``. Duplicates across signals are kept;
    per-file deduplication is the caller's concern.
    """
    merged: list[Retrieved] = []
    for hit in vector_hits:
        boost = weights.factsheet_boost if hit.is_factsheet else 0.0
        merged.append(replace(hit, score=hit.score + boost))
    for hit in lexical_hits:
        merged.append(replace(hit, score=weights.lexical_base + hit.score))
    merged.extend(replace(pin, score=weights.endpoint_pin) for pin in endpoint_pins)
    merged.extend(replace(pin, score=weights.symbol_pin) for pin in symbol_pins)
    merged.extend(replace(pin, score=weights.edge_pin) for pin in edge_pins)

    merged.sort(key=lambda item: item.score, reverse=True)
    return merged[: max(top_k, weights.result_floor)]
