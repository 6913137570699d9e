"""Source host protocol and the records it returns."""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

ADDED = "added"
MODIFIED = "modified"
REMOVED = "removed"


@dataclass
class SourceFile:
    """A blob in a repository tree."""

    path: str  # Relative to the repository root, forward slashes
    size: int | None = None


@dataclass
class ChangedPath:
    """A path touched between two revisions."""

    path: str
    status: str  # added, modified, removed


@runtime_checkable
class SourceHost(Protocol):
    """Read access to repository trees, blobs and diffs."""

    def resolve_revision(self, repo: str, ref: str | None = None) -> str:
        """Resolve a branch, tag or None (default branch) to a revision id."""
        ...

    def list_tree(self, repo: str, revision: str) -> list[SourceFile]:
        """List every file of the repository at ``revision``."""
        ...

    def get_file_content(self, repo: str, path: str, revision: str) -> bytes:
        """Raw bytes of one file at ``revision``."""
        ...

    def get_diff(self, repo: str, base: str, head: str) -> list[ChangedPath]:
        """Paths changed between ``base`` and ``head``."""
        ...
