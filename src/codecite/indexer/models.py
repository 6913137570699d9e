"""Data models for the indexer."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Document:
    """A file at a specific revision of a repository."""

    id: int | None = None
    repo: str = ""  # e.g. "acme/api"
    revision: str = ""  # commit sha or "working-tree"
    path: str = ""  # Relative to the repository root
    language: str | None = None
    content_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ChunkUnit:
    """A structural unit found by a chunker, before ordinals are assigned."""

    text: str
    kind: str  # section, route, code, file
    start_line: int
    end_line: int
    title: str | None = None
    symbol: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class Chunk:
    """An addressable unit of a document, stored with its embedding."""

    id: int | None = None
    document_id: int = 0
    ordinal: int = 0
    text: str = ""
    meta: dict[str, Any] = field(default_factory=dict)
    content_hash: str = ""
    embedding: list[float] | None = None

    @property
    def kind(self) -> str | None:
        return self.meta.get("kind")

    @property
    def symbol(self) -> str | None:
        return self.meta.get("symbol")

    @property
    def start_line(self) -> int | None:
        return self.meta.get("start_line")

    @property
    def end_line(self) -> int | None:
        return self.meta.get("end_line")


@dataclass
class Symbol:
    """A declared function, class, method, interface, type alias or enum."""

    kind: str
    name: str
    start_line: int
    end_line: int
    signature: str | None = None
    modifiers: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)
    language: str | None = None
    id: int | None = None
    document_id: int = 0


@dataclass
class Endpoint:
    """An HTTP route declared by a controller method."""

    method: str
    path: str
    handler_name: str
    start_line: int
    end_line: int
    protocol: str = "http"
    decorators: list[str] = field(default_factory=list)
    request_shape: dict[str, Any] | None = None
    response_shape: dict[str, Any] | None = None
    language: str | None = None
    id: int | None = None
    document_id: int = 0


@dataclass
class Edge:
    """A cross-component relationship found by pattern matching.

    ``method`` names the extraction technique; text-pattern edges are
    ``heuristic`` and carry a lower ``confidence`` than semantic ones would.
    """

    edge_type: str  # publish, consume, call
    to_kind: str  # topic, queue, http
    to_value: str
    start_line: int
    end_line: int
    from_symbol_name: str | None = None
    method: str = "heuristic"
    confidence: float = 0.5
    meta: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    document_id: int = 0


@dataclass
class Finding:
    """A static-analysis result ingested from an external report."""

    tool: str
    rule_id: str
    severity: str
    message: str
    path: str
    start_line: int | None = None
    end_line: int | None = None
    fingerprint: str | None = None
    repo: str | None = None
    document_id: int | None = None
    id: int | None = None


@dataclass
class Facts:
    """Everything the fact extractor derives from one file."""

    symbols: list[Symbol] = field(default_factory=list)
    endpoints: list[Endpoint] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)


@dataclass
class Retrieved:
    """A ranked query result, traceable to the row it was built from.

    ``source`` is one of ``chunk``, ``endpoint``, ``symbol`` or ``edge`` and
    ``source_id`` is the id of that row.
    """

    score: float
    repo: str
    path: str
    revision: str
    document_id: int
    source: str
    source_id: int
    symbol: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    preview: str = ""
    link: str = ""
    is_factsheet: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RepoFilter:
    """Restricts a query to all repositories or an explicit subset."""

    repos: tuple[str, ...] | None = None

    @classmethod
    def all_repos(cls) -> "RepoFilter":
        return cls(None)

    @classmethod
    def only(cls, repos: list[str] | tuple[str, ...]) -> "RepoFilter":
        return cls(tuple(dict.fromkeys(repos)))

    @classmethod
    def from_list(cls, repos: list[str] | None) -> "RepoFilter":
        """Build a filter from an optional list; None or empty means all."""
        return cls.only(repos) if repos else cls.all_repos()

    @property
    def is_all(self) -> bool:
        return self.repos is None

    def allows(self, repo: str) -> bool:
        return self.repos is None or repo in self.repos

    def sql(self, column: str) -> tuple[str, list[str]]:
        """Return an ``AND ...`` clause and params restricting ``column``."""
        if self.repos is None:
            return "", []
        if not self.repos:
            return " AND 0", []
        placeholders = ", ".join("?" for _ in self.repos)
        return f" AND {column} IN ({placeholders})", list(self.repos)


@dataclass
class SyncStats:
    """Counters reported by a repository sync."""

    indexed: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0

    def __str__(self) -> str:
        return (
            f"{self.indexed} indexed, {self.unchanged} unchanged, {self.skipped} skipped, "
            f"{self.failed} failed, {self.deleted} deleted"
        )
