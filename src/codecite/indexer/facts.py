"""Structural fact extraction: symbols, endpoints and edges for one file."""

from codecite.indexer.edges import extract_edges
from codecite.indexer.endpoints import extract_endpoints
from codecite.indexer.models import Endpoint, Facts, Symbol
from codecite.indexer.parser import SCRIPT_LANGUAGES, ContentKind, classify, language_from_path
from codecite.indexer.symbols import extract_python_symbols, extract_script_symbols
from codecite.indexer.syntax import parse_script


def extract(content: str, path: str, language: str | None = None) -> Facts:
    """
    Derive symbols, endpoints and edges from a file.

    Endpoints only come from files following the controller naming
    convention. Edges are scanned in source files only. Extraction is
    always complete; there is no incremental mode.
    """
    language = language or language_from_path(path)
    kind = classify(path, language)
    if kind not in (ContentKind.CONTROLLER, ContentKind.SOURCE):
        return Facts()

    symbols: list[Symbol] = []
    endpoints: list[Endpoint] = []
    if language in SCRIPT_LANGUAGES or kind is ContentKind.CONTROLLER:
        st = parse_script(content, path)
        symbols = extract_script_symbols(st, language or "javascript")
        if kind is ContentKind.CONTROLLER:
            endpoints = extract_endpoints(st, language or "javascript")
    elif language == "python":
        symbols = extract_python_symbols(content, path)

    return Facts(
        symbols=symbols,
        endpoints=endpoints,
        edges=extract_edges(content, symbols),
    )
