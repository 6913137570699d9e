"""Prompt assembly for grounded answers."""

from typing import Any

from codecite.indexer.models import Retrieved

MAX_ENDPOINT_FACTS = 30
MAX_EDGE_FACTS = 40
MAX_FINDING_FACTS = 20
MAX_SYMBOL_FACTS = 40

SYSTEM_PROMPT = """You are a senior engineer. Answer ONLY with facts grounded in the provided sources.
Rules:
- Cite with [n] markers, where n matches the index in the SOURCES list.
- Never invent files, functions, endpoints or behavior that the sources do not show.
- Prefer short code snippets (30 lines or fewer) and concrete steps.
- If the sources do not contain the answer, say "Not enough information in the provided sources." """

RESPONSE_FORMAT = """RESPONSE FORMAT (JSON):
{
  "answer": "markdown with [n] citations",
  "citations": [
    {"link": "<url>", "repo": "<org/repo>", "path": "<file>", "start_line": 10, "end_line": 30}
  ]
}
In "citations", include ONLY sources you referenced in the answer, copying their link exactly."""


def _span(fact: dict[str, Any]) -> str:
    start = fact.get("start")
    if not start:
        return ""
    return f" L{start}-{fact.get('end') or start}"


def format_facts(facts: dict[str, list[dict[str, Any]]] | None) -> str:
    """Compact FACTS tables; empty sections are left out."""
    if not facts:
        return ""
    sections: list[str] = []

    endpoints = facts.get("endpoints") or []
    if endpoints:
        lines = [
            f"- {e.get('method') or 'ALL'} {e.get('route') or '/'} -> {e.get('handler') or ''}"
            f" @ {e['repo']}/{e['path']}{_span(e)}"
            for e in endpoints[:MAX_ENDPOINT_FACTS]
        ]
        sections.append("ENDPOINTS:\n" + "\n".join(lines))

    edges = facts.get("edges") or []
    if edges:
        lines = [
            f"- {e['edge_type']} -> {e['to_kind']}:{e['to_value']} @ {e['repo']}/{e['path']}{_span(e)}"
            for e in edges[:MAX_EDGE_FACTS]
        ]
        sections.append("EDGES:\n" + "\n".join(lines))

    findings = facts.get("findings") or []
    if findings:
        lines = [
            f"- {f['severity']} {f['rule_id']}: {f['message']} @ {f['repo']}/{f['path']}{_span(f)}"
            for f in findings[:MAX_FINDING_FACTS]
        ]
        sections.append("FINDINGS (high+):\n" + "\n".join(lines))

    symbols = facts.get("symbols") or []
    if symbols:
        lines = [
            f"- {s['kind']} {s['name']} @ {s['repo']}/{s['path']}{_span(s)}"
            for s in symbols[:MAX_SYMBOL_FACTS]
        ]
        sections.append("SYMBOLS:\n" + "\n".join(lines))

    return "\n\n".join(sections)


def format_source(index: int, source: Retrieved, context_chars: int) -> str:
    header = [f"{source.repo}/{source.path}"]
    if source.symbol:
        header.append(f"· {source.symbol}")
    if source.start_line:
        header.append(f"· L{source.start_line}-{source.end_line or source.start_line}")
    header.append(source.link)

    body = source.preview or ""
    if len(body) > context_chars:
        body = body[:context_chars] + "\n…"
    return f"SOURCE [{index}] {' '.join(header)}\n----\n{body}"


def build_prompt(
    question: str,
    sources: list[Retrieved],
    facts: dict[str, list[dict[str, Any]]] | None = None,
    context_chars: int = 1600,
) -> tuple[str, str]:
    """Return the (system, user) messages for a grounded answer."""
    source_list = "\n".join(f"[{i}] {s.link}" for i, s in enumerate(sources, start=1))
    context = "\n\n".join(
        format_source(i, s, context_chars) for i, s in enumerate(sources, start=1)
    )

    parts = [f"QUESTION:\n{question}"]
    facts_text = format_facts(facts)
    if facts_text:
        parts.append(f"FACTS (from analysis):\n{facts_text}")
    parts.append(f"SOURCES:\n{source_list}")
    parts.append(f"CONTEXT:\n{context}")
    parts.append(RESPONSE_FORMAT)
    return SYSTEM_PROMPT.strip(), "\n\n".join(parts)
