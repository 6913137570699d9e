"""Permalinks and path hints."""

import re
from dataclasses import dataclass
from urllib.parse import quote

from codecite.indexer.models import Retrieved

ANY_REPO = "*"

HINT_PATTERN = re.compile(r"^([^:]+/[^:]+):{1,2}(.*)$")


def permalink(
    link_host: str,
    repo: str,
    revision: str,
    path: str,
    start_line: int | None = None,
    end_line: int | None = None,
) -> str:
    """Revision-pinned link to a file, with a line anchor when a span is known.

    ``#Ls-Le`` for multi-line spans, ``#Ls`` for a single line.
    """
    anchor = ""
    if start_line:
        if end_line and end_line != start_line:
            anchor = f"#L{start_line}-L{end_line}"
        else:
            anchor = f"#L{start_line}"
    return f"{link_host.rstrip('/')}/{repo}/blob/{revision}/{quote(path)}{anchor}"


def attach_links(items: list[Retrieved], link_host: str) -> list[Retrieved]:
    for item in items:
        item.link = permalink(
            link_host, item.repo, item.revision, item.path, item.start_line, item.end_line
        )
    return items


@dataclass(frozen=True)
class PathHint:
    """An exact file the caller wants included; ``repo`` is ``*`` for any repository."""

    repo: str
    path: str

    @property
    def any_repo(self) -> bool:
        return self.repo == ANY_REPO


def parse_path_hints(hints: list[str] | None) -> list[PathHint]:
    """Parse ``org/repo:path``, ``org/repo::path`` or bare ``path`` hints."""
    parsed: list[PathHint] = []
    for raw in hints or []:
        raw = raw.strip()
        if not raw:
            continue
        match = HINT_PATTERN.match(raw)
        if match:
            hint = PathHint(repo=match.group(1), path=match.group(2).lstrip("/"))
        else:
            hint = PathHint(repo=ANY_REPO, path=raw.lstrip("/"))
        if hint.path and hint not in parsed:
            parsed.append(hint)
    return parsed
