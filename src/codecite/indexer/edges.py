"""Heuristic cross-component edge extraction.

Edges are found by scanning raw source lines for well-known call shapes
(message publishing and consuming, outbound HTTP calls with a literal URL).
This is textual pattern matching, not semantic analysis, so every edge is
tagged ``method="heuristic"`` with a fixed confidence.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from codecite.indexer.models import Edge, Symbol

HEURISTIC_CONFIDENCE = 0.5

_Q = r"""(['"`])"""


@dataclass(frozen=True)
class EdgePattern:
    """A line pattern and how to turn a match into edge fields."""

    regex: re.Pattern
    edge_type: str
    to_kind: str
    lib: str
    value_group: int
    http_method: Callable[[re.Match], str] | None = None


EDGE_PATTERNS: list[EdgePattern] = [
    # GCP Pub/Sub: pubsub.topic('orders').publish(...)
    EdgePattern(
        re.compile(r"\.topic\(" + _Q + r"([^'\"`]+)\1\)\.publish"),
        "pubsub.publish", "topic", "gcp_pubsub", 2,
    ),
    # Kafka: producer.send({ topic: 'orders', ... })
    EdgePattern(
        re.compile(r"producer\.send\(\s*\{[^}]*topic:\s*" + _Q + r"([^'\"`]+)\1"),
        "pubsub.publish", "topic", "kafka", 2,
    ),
    # BullMQ producer: new Queue('emails')
    EdgePattern(
        re.compile(r"new\s+Queue\(" + _Q + r"([^'\"`]+)\1"),
        "pubsub.publish", "queue", "bullmq", 2,
    ),
    # BullMQ consumer: @Processor('emails')
    EdgePattern(
        re.compile(r"@Processor\(" + _Q + r"([^'\"`]+)\1"),
        "pubsub.consume", "queue", "bullmq", 2,
    ),
    # axios.post('https://...')
    EdgePattern(
        re.compile(r"axios\.(get|post|put|patch|delete)\(\s*" + _Q + r"([^'\"`]+)\2"),
        "http.call", "url", "axios", 3,
        http_method=lambda m: m.group(1).upper(),
    ),
    # fetch('https://...', { method: 'POST' })
    EdgePattern(
        re.compile(
            r"fetch\(\s*" + _Q + r"([^'\"`]+)\1\s*,\s*\{[^}]*method:\s*(['\"`])([A-Z]+)\3"
        ),
        "http.call", "url", "fetch", 2,
        http_method=lambda m: m.group(4),
    ),
    # Nest HttpService: this.httpService.get('https://...')
    EdgePattern(
        re.compile(
            r"this\.httpService\.(get|post|put|patch|delete)\(\s*" + _Q + r"([^'\"`]+)\2"
        ),
        "http.call", "url", "nest-http", 3,
        http_method=lambda m: m.group(1).upper(),
    ),
    # Python: requests.get("https://..."), httpx.post("https://...")
    EdgePattern(
        re.compile(r"\b(requests|httpx)\.(get|post|put|patch|delete)\(\s*f?(['\"])([^'\"]+)\3"),
        "http.call", "url", "python-http", 4,
        http_method=lambda m: m.group(2).upper(),
    ),
]


def extract_edges(content: str, symbols: list[Symbol] | None = None) -> list[Edge]:
    """Scan every line for known call shapes.

    When ``symbols`` are given, each edge is attributed to the innermost
    symbol whose line span contains the match.
    """
    lines = content.splitlines()
    edges: list[Edge] = []

    for index, line in enumerate(lines):
        line_number = index + 1
        for pattern in EDGE_PATTERNS:
            match = pattern.regex.search(line)
            if not match:
                continue
            meta = {"lib": pattern.lib}
            if pattern.http_method is not None:
                meta["method"] = pattern.http_method(match)
            edges.append(
                Edge(
                    edge_type=pattern.edge_type,
                    to_kind=pattern.to_kind,
                    to_value=match.group(pattern.value_group),
                    start_line=line_number,
                    end_line=line_number,
                    from_symbol_name=_enclosing_symbol(symbols or [], line_number),
                    method="heuristic",
                    confidence=HEURISTIC_CONFIDENCE,
                    meta=meta,
                )
            )
    return edges


def _enclosing_symbol(symbols: list[Symbol], line: int) -> str | None:
    best: Symbol | None = None
    for symbol in symbols:
        if symbol.start_line <= line <= symbol.end_line:
            if best is None or (symbol.end_line - symbol.start_line) < (best.end_line - best.start_line):
                best = symbol
    return best.name if best else None
