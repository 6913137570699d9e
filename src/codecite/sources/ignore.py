"""Path ignore rules: built-in defaults plus root ``.gitignore`` patterns.

Matching is delegated to ``pathspec`` with git's wildmatch semantics.
The last matching pattern wins, so ``!pattern`` re-includes a path.
"""

import re

import pathspec

DEFAULT_IGNORES = [
    "node_modules/",
    "dist/",
    "build/",
    ".next/",
    "coverage/",
    ".git/",
    ".github/",
    "__pycache__/",
    ".venv/",
    "*.min.*",
    "*.map",
    "*.lock",
    "*.zip",
    "*.tar",
    "*.tgz",
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.pdf",
    "*.ico",
    "*.woff",
    "*.woff2",
    "*.ttf",
]

BINARY_PATTERN = re.compile(
    r"\.(png|jpg|jpeg|gif|pdf|zip|tgz|ico|woff2?|ttf|exe|dylib|so|jar|pyc|class|bin)$",
    re.IGNORECASE,
)


def is_binary_path(path: str) -> bool:
    return bool(BINARY_PATTERN.search(path))


class IgnoreRules:
    """Default ignores followed by repository patterns, in git's order."""

    def __init__(self, patterns: list[str] | None = None):
        self.patterns: list[str] = list(DEFAULT_IGNORES)
        if patterns:
            self.patterns.extend(
                line.rstrip() for line in patterns if line.strip() and not line.startswith("#")
            )
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    @classmethod
    def from_gitignore(cls, text: str | None) -> "IgnoreRules":
        return cls(text.splitlines() if text else None)

    def is_ignored(self, path: str) -> bool:
        return self._spec.match_file(path)

    def is_ignored_dir(self, path: str) -> bool:
        """Whether a whole directory can be pruned."""
        return self._spec.match_file(path.rstrip("/") + "/")
