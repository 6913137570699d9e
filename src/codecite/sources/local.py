"""Source host over local checkouts."""

import logging
from pathlib import Path

from codecite.errors import SourceError
from codecite.sources.base import MODIFIED, ChangedPath, SourceFile
from codecite.sources.ignore import IgnoreRules

logger = logging.getLogger(__name__)

WORKING_TREE = "working-tree"


class LocalSourceHost:
    """
    Serves repositories from directories on disk.

    The working tree is always what gets listed and read; the revision only
    labels documents and permalinks. It is the checked-out commit when the
    directory is a git checkout, ``working-tree`` otherwise.
    """

    def __init__(self, roots: dict[str, Path]):
        """
        Args:
            roots: Mapping of ``org/repo`` names to checkout directories.
        """
        self.roots = roots

    def _root(self, repo: str) -> Path:
        root = self.roots.get(repo)
        if root is None:
            raise SourceError(f"Unknown local repository: {repo}")
        if not root.is_dir():
            raise SourceError(f"Repository root does not exist: {root}")
        return root

    def resolve_revision(self, repo: str, ref: str | None = None) -> str:
        git_dir = self._root(repo) / ".git"
        head_file = git_dir / "HEAD"
        if not head_file.is_file():
            return WORKING_TREE

        head = head_file.read_text(encoding="utf-8").strip()
        if not head.startswith("ref:"):
            return head or WORKING_TREE

        ref_name = head.split(":", 1)[1].strip()
        ref_file = git_dir / ref_name
        if ref_file.is_file():
            return ref_file.read_text(encoding="utf-8").strip()

        packed = git_dir / "packed-refs"
        if packed.is_file():
            for line in packed.read_text(encoding="utf-8").splitlines():
                sha, _, name = line.partition(" ")
                if name.strip() == ref_name:
                    return sha
        return WORKING_TREE

    def list_tree(self, repo: str, revision: str) -> list[SourceFile]:
        root = self._root(repo)
        rules = IgnoreRules()
        files: list[SourceFile] = []
        self._walk(root, root, rules, files)
        return files

    def _walk(self, root: Path, directory: Path, rules: IgnoreRules, files: list[SourceFile]) -> None:
        for entry in sorted(directory.iterdir()):
            relative = entry.relative_to(root).as_posix()
            if entry.is_symlink():
                continue
            if entry.is_dir():
                if not rules.is_ignored_dir(relative):
                    self._walk(root, entry, rules, files)
            elif entry.is_file():
                files.append(SourceFile(path=relative, size=entry.stat().st_size))

    def get_file_content(self, repo: str, path: str, revision: str) -> bytes:
        root = self._root(repo)
        file_path = root / path
        # Refuse paths that escape the checkout
        try:
            resolved = file_path.resolve()
            resolved_root = root.resolve()
        except OSError as e:
            raise SourceError(f"Cannot resolve {repo}:{path}: {e}") from e
        if not resolved.is_relative_to(resolved_root):
            raise SourceError(f"Path escapes repository root: {path}")
        try:
            return resolved.read_bytes()
        except OSError as e:
            raise SourceError(f"Cannot read {repo}:{path}: {e}") from e

    def get_diff(self, repo: str, base: str, head: str) -> list[ChangedPath]:
        """Every current file, reported as modified.

        Unchanged files are then cheap: the indexer skips them by content hash.
        """
        return [ChangedPath(path=f.path, status=MODIFIED) for f in self.list_tree(repo, head)]
