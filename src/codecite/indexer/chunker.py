"""Chunking logic: dispatches a file to the splitter for its content kind."""

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from codecite.indexer.code_chunker import chunk_controller, chunk_python, chunk_script
from codecite.indexer.models import Chunk, ChunkUnit
from codecite.indexer.parser import ContentKind, classify, language_from_path, parse_frontmatter

# Section size limit, roughly 1500 tokens
MAX_CHUNK_CHARS = 6000

# Headings of depth 1-3 open a new section
HEADING_PATTERN = re.compile(r"^ {0,3}(#{1,3})\s+(.+?)\s*#*\s*$")

FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})")


@dataclass
class Section:
    """A markdown section: a heading and the lines under it."""

    title: str | None
    level: int
    start: int  # 0-based index of the first line
    lines: list[str] = field(default_factory=list)
    has_heading: bool = False

    @property
    def body(self) -> str:
        lines = self.lines[1:] if self.has_heading else self.lines
        return "\n".join(lines).strip()


def split_by_headings(lines: list[str]) -> list[Section]:
    """
    Split lines at level 1-3 headings.

    Headings inside fenced code blocks do not split sections. Content
    before the first heading forms an untitled preamble section.
    """
    sections: list[Section] = []
    current = Section(title=None, level=0, start=0)
    fence: str | None = None

    for index, line in enumerate(lines):
        fence_match = FENCE_PATTERN.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker[0] * 3
            elif marker.startswith(fence):
                fence = None
            current.lines.append(line)
            continue

        heading = HEADING_PATTERN.match(line) if fence is None else None
        if heading:
            sections.append(current)
            current = Section(
                title=heading.group(2).strip(),
                level=len(heading.group(1)),
                start=index,
                lines=[line],
                has_heading=True,
            )
            continue

        current.lines.append(line)

    sections.append(current)
    return sections


def _pack(pieces: list[str], separator: str, max_chars: int) -> list[str]:
    """Greedily join consecutive pieces while the result fits in ``max_chars``."""
    packed: list[str] = []
    buffer = ""
    for piece in pieces:
        candidate = f"{buffer}{separator}{piece}" if buffer else piece
        if len(candidate) <= max_chars:
            buffer = candidate
            continue
        if buffer:
            packed.append(buffer)
        buffer = piece
    if buffer:
        packed.append(buffer)
    return packed


def split_oversized(text: str, max_chars: int) -> list[str]:
    """
    Split text into pieces of at most ``max_chars``.

    Paragraphs are packed together first. A paragraph too long on its own
    is packed line by line, and a single line too long is truncated.
    """
    pieces: list[str] = []
    paragraphs: list[str] = []
    for paragraph in re.split(r"\n\n+", text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) <= max_chars:
            paragraphs.append(paragraph)
            continue
        pieces.extend(_pack(paragraphs, "\n\n", max_chars))
        paragraphs = []
        lines = [line[:max_chars] for line in paragraph.split("\n")]
        pieces.extend(_pack(lines, "\n", max_chars))
    pieces.extend(_pack(paragraphs, "\n\n", max_chars))
    return pieces


def chunk_markdown(content: str, path: str) -> list[ChunkUnit]:
    """
    Chunk markdown by headings.

    Rules:
    1. Split by #, ## and ### headings (outside code fences)
    2. Drop sections with no content under the heading
    3. If a section exceeds MAX_CHUNK_CHARS, split by paragraphs
    4. If a paragraph exceeds limit, split by lines
    5. If a line exceeds limit, truncate
    """
    frontmatter = parse_frontmatter(content, path)
    lines = frontmatter.body.split("\n")
    units: list[ChunkUnit] = []

    for section in split_by_headings(lines):
        if not section.body:
            continue

        title = section.title if section.has_heading else frontmatter.title
        text = "\n".join(section.lines).strip()
        offset = frontmatter.line_offset + section.start
        first_line = offset + _leading_blank_count(section.lines) + 1
        last_line = offset + _trimmed_line_count(section.lines)

        if len(text) <= MAX_CHUNK_CHARS:
            units.append(
                ChunkUnit(
                    text=text,
                    kind="section",
                    start_line=first_line,
                    end_line=last_line,
                    title=title,
                    extra={"level": section.level},
                )
            )
            continue

        # Sub-chunks share the section's span; only the first keeps the title
        for i, piece in enumerate(split_oversized(text, MAX_CHUNK_CHARS)):
            units.append(
                ChunkUnit(
                    text=piece,
                    kind="section",
                    start_line=first_line,
                    end_line=last_line,
                    title=title if i == 0 else None,
                    extra={"level": section.level, "part": i},
                )
            )

    return units


def _leading_blank_count(lines: list[str]) -> int:
    count = 0
    while count < len(lines) - 1 and not lines[count].strip():
        count += 1
    return count


def _trimmed_line_count(lines: list[str]) -> int:
    """Number of lines up to and including the last non-blank one."""
    count = len(lines)
    while count > 1 and not lines[count - 1].strip():
        count -= 1
    return max(count, 1)


def whole_file(content: str) -> ChunkUnit:
    """The fallback unit: the entire file."""
    line_count = len(content.split("\n")) if content else 1
    if content.endswith("\n") and line_count > 1:
        line_count -= 1
    return ChunkUnit(text=content, kind="file", start_line=1, end_line=max(1, line_count))


def split_unit(unit: ChunkUnit, max_chars: int = MAX_CHUNK_CHARS) -> list[ChunkUnit]:
    """
    Split a unit longer than ``max_chars`` into consecutive line ranges.

    Parts keep the unit's kind and symbol and carry their own line span.
    A single line too long is truncated; blank-only parts are dropped.
    """
    if len(unit.text) <= max_chars:
        return [unit]

    parts: list[ChunkUnit] = []
    buffer: list[str] = []
    size = 0
    first = unit.start_line
    for index, line in enumerate(unit.text.split("\n")):
        line = line[:max_chars]
        added = len(line) + 1 if buffer else len(line)
        if buffer and size + added > max_chars:
            _append_part(parts, unit, buffer, first)
            first = unit.start_line + index
            buffer, size, added = [], 0, len(line)
        buffer.append(line)
        size += added
    _append_part(parts, unit, buffer, first)
    return parts or [replace(unit, text=unit.text[:max_chars])]


def _append_part(parts: list[ChunkUnit], unit: ChunkUnit, lines: list[str], start: int) -> None:
    text = "\n".join(lines)
    if not text.strip():
        return
    extra = dict(unit.extra)
    extra["part"] = len(parts)
    parts.append(
        ChunkUnit(
            text=text,
            kind=unit.kind,
            start_line=start,
            end_line=min(start + len(lines) - 1, unit.end_line),
            title=unit.title if not parts else None,
            symbol=unit.symbol,
            extra=extra,
        )
    )


def _chunk_source(content: str, path: str, language: str | None) -> list[ChunkUnit]:
    if language == "python":
        return chunk_python(content, path)
    return chunk_script(content, path)


def _chunk_plain(content: str, path: str, language: str | None) -> list[ChunkUnit]:
    return []


_SPLITTERS: dict[ContentKind, Callable[[str, str, str | None], list[ChunkUnit]]] = {
    ContentKind.MARKUP: lambda content, path, language: chunk_markdown(content, path),
    ContentKind.CONTROLLER: lambda content, path, language: chunk_controller(content, path),
    ContentKind.SOURCE: _chunk_source,
    ContentKind.PLAIN: _chunk_plain,
}


def chunk(content: str, path: str, language_hint: str | None = None) -> list[Chunk]:
    """
    Split a file into ordered chunks.

    A file with no structural unit (unknown language, zero declarations,
    a controller without routes) yields exactly one whole-file chunk.
    Units longer than MAX_CHUNK_CHARS are split into line ranges. Ordinals
    follow discovery order and are stable for unchanged content.
    """
    language = language_hint or language_from_path(path)
    kind = classify(path, language)
    units = _SPLITTERS[kind](content, path, language)
    if not units:
        units = [whole_file(content)]
    units = [part for unit in units for part in split_unit(unit)]

    chunks: list[Chunk] = []
    for ordinal, unit in enumerate(units):
        meta = {
            "path": path,
            "kind": unit.kind,
            "title": unit.title,
            "symbol": unit.symbol,
            "start_line": unit.start_line,
            "end_line": unit.end_line,
        }
        meta.update(unit.extra)
        chunks.append(Chunk(ordinal=ordinal, text=unit.text, meta=meta))
    return chunks
