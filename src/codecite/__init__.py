"""
codecite - MCP server for citation-grounded answers over source repositories.

Indexes repositories into code-aware chunks and structural facts (symbols,
HTTP endpoints, cross-service edges) and answers questions with citations
that are verified against what was actually retrieved.

Stack:
- Python + FastMCP
- SQLite FTS5 + numpy cosine similarity (index)
- tree-sitter / ast (code structure)
- OpenAI-compatible embeddings and chat (providers)
"""

__version__ = "0.1.0"
