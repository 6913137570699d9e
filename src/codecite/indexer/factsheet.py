"""Synthetic factsheet chunks summarizing extracted endpoints and symbols.

Factsheets make structured facts reachable by vector search. They are
embedded like any other chunk and get a small boost at query time.
"""

import json
import re
from typing import Any

from codecite.indexer.models import Chunk, Endpoint, Facts, Symbol

FACTSHEET_KIND = "factsheet"


def one_line(text: str, max_chars: int = 400) -> str:
    t = re.sub(r"\s+", " ", text).strip()
    return t[:max_chars] + " …" if len(t) > max_chars else t


def json_compact(value: Any, max_chars: int = 400) -> str:
    t = json.dumps(value, separators=(",", ":"), ensure_ascii=False, sort_keys=True)
    return t[:max_chars] + " …" if len(t) > max_chars else t


def endpoint_factsheet(endpoint: Endpoint, path: str) -> str:
    lines = [
        "KIND: endpoint",
        f"LANG: {endpoint.language}",
        f"FILE: {path}",
        f"SPAN: L{endpoint.start_line}-{endpoint.end_line}",
        f"ROUTE: {endpoint.method or 'ALL'} {endpoint.path or '/'}",
        f"HANDLER: {endpoint.handler_name or ''}",
    ]
    if endpoint.request_shape:
        lines.append(f"REQUEST: {json_compact(endpoint.request_shape)}")
    if endpoint.response_shape:
        lines.append(f"RESPONSE: {json_compact(endpoint.response_shape)}")
    if endpoint.decorators:
        lines.append(f"DECORATORS: {','.join(endpoint.decorators)}")
    return "\n".join(lines)


def symbol_factsheet(symbol: Symbol, path: str) -> str:
    lines = [
        f"KIND: {symbol.kind}",
        f"LANG: {symbol.language}",
        f"NAME: {symbol.name}",
        f"FILE: {path}",
    ]
    if symbol.start_line and symbol.end_line:
        lines.append(f"SPAN: L{symbol.start_line}-{symbol.end_line}")
    if symbol.signature:
        lines.append(f"SIGNATURE: {one_line(symbol.signature, 300)}")
    if symbol.meta.get("shape"):
        lines.append(f"SHAPE: {json_compact(symbol.meta['shape'])}")
    if symbol.modifiers:
        lines.append(f"MODIFIERS: {json_compact(symbol.modifiers)}")
    return "\n".join(lines)


def build_factsheets(facts: Facts, path: str, start_ordinal: int) -> list[Chunk]:
    """One factsheet chunk per endpoint, then per symbol; ordinals continue from ``start_ordinal``."""
    chunks: list[Chunk] = []
    ordinal = start_ordinal

    for endpoint in facts.endpoints:
        chunks.append(
            Chunk(
                ordinal=ordinal,
                text=endpoint_factsheet(endpoint, path),
                meta={
                    "path": path,
                    "kind": FACTSHEET_KIND,
                    "subtype": "endpoint",
                    "title": f"{endpoint.method or 'ALL'} {endpoint.path or '/'}",
                    "symbol": endpoint.handler_name,
                    "start_line": endpoint.start_line,
                    "end_line": endpoint.end_line,
                },
            )
        )
        ordinal += 1

    for symbol in facts.symbols:
        chunks.append(
            Chunk(
                ordinal=ordinal,
                text=symbol_factsheet(symbol, path),
                meta={
                    "path": path,
                    "kind": FACTSHEET_KIND,
                    "subtype": "symbol",
                    "title": f"{symbol.kind}:{symbol.name}",
                    "symbol": symbol.name,
                    "start_line": symbol.start_line,
                    "end_line": symbol.end_line,
                },
            )
        )
        ordinal += 1

    return chunks
