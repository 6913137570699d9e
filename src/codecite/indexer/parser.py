"""File classification and YAML frontmatter parsing."""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

import yaml

logger = logging.getLogger(__name__)


class ContentKind(Enum):
    """How a file is split into chunks. Resolved once per file."""

    MARKUP = "markup"
    CONTROLLER = "controller"
    SOURCE = "source"
    PLAIN = "plain"


LANGUAGE_BY_EXTENSION = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".md": "markdown",
    ".mdx": "markdown",
    ".markdown": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".sql": "sql",
    ".sh": "shell",
    ".go": "go",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".rs": "rust",
    ".php": "php",
    ".cs": "csharp",
    ".css": "css",
    ".scss": "scss",
    ".html": "html",
    ".graphql": "graphql",
    ".proto": "protobuf",
}

# Languages parsed with the tree-sitter TypeScript grammars
SCRIPT_LANGUAGES = frozenset({"typescript", "tsx", "javascript"})

SOURCE_LANGUAGES = SCRIPT_LANGUAGES | {"python"}

CONTROLLER_PATTERN = re.compile(r"controller\.(ts|tsx|js)$", re.IGNORECASE)


def language_from_path(path: str) -> str | None:
    """Infer a language tag from the file extension."""
    suffix = PurePosixPath(path).suffix.lower()
    return LANGUAGE_BY_EXTENSION.get(suffix)


def classify(path: str, language: str | None = None) -> ContentKind:
    """Resolve the content kind for a file.

    Priority: markup, then the controller naming convention, then known
    source languages, then plain text.
    """
    language = language or language_from_path(path)
    if language == "markdown":
        return ContentKind.MARKUP
    if CONTROLLER_PATTERN.search(path):
        return ContentKind.CONTROLLER
    if language in SOURCE_LANGUAGES:
        return ContentKind.SOURCE
    return ContentKind.PLAIN


@dataclass
class Frontmatter:
    """Parsed frontmatter data."""

    title: str | None = None
    raw: dict | None = None
    body: str = ""
    line_offset: int = 0  # Lines consumed before the body starts


def parse_frontmatter(content: str, file_path: str) -> Frontmatter:
    """
    Parse YAML frontmatter from markdown content.

    The body keeps its original lines so that line numbers computed on it
    can be shifted back by ``line_offset`` to file-relative numbers.

    Args:
        content: The full markdown content
        file_path: Repository-relative path, used for logging

    Returns:
        Frontmatter with the body and the number of lines it was offset by
    """
    lines = content.split("\n")
    if not lines or lines[0].strip() != "---":
        return Frontmatter(body=content)

    closing = None
    for i in range(1, len(lines)):
        if lines[i].strip() in ("---", "..."):
            closing = i
            break
    if closing is None:
        return Frontmatter(body=content)

    try:
        raw = yaml.safe_load("\n".join(lines[1:closing]))
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML frontmatter in %s: %s", file_path, e)
        return Frontmatter(body=content)

    if raw is not None and not isinstance(raw, dict):
        return Frontmatter(body=content)

    title = None
    if raw and raw.get("title") is not None:
        title = str(raw["title"])

    return Frontmatter(
        title=title,
        raw=raw,
        body="\n".join(lines[closing + 1 :]),
        line_offset=closing + 1,
    )
