"""Query-time retrieval: hybrid search and the multi-pass ladder."""

from codecite.retrieval.fusion import fuse
from codecite.retrieval.hybrid import HybridRetriever
from codecite.retrieval.ladder import LadderResult, LadderState, RetrievalLadder
from codecite.retrieval.links import PathHint, parse_path_hints, permalink

__all__ = [
    "HybridRetriever",
    "LadderResult",
    "LadderState",
    "PathHint",
    "RetrievalLadder",
    "fuse",
    "parse_path_hints",
    "permalink",
]
