"""Markdown chunker — heading-aware sections with paragraph packing.

Strategy:
- A line starting with one to three ``#`` followed by whitespace opens a new
  section; the heading line itself belongs to the section it opens.
- Content before the first heading forms a section with an empty heading.
- Sections whose trimmed text is shorter than ``min_chars`` are dropped.
- Sections longer than ``max_chars`` are split on blank lines and the
  paragraphs greedily packed into sub-chunks of at most ``max_chars``. A
  single paragraph is never split, so one oversized paragraph yields one
  oversized chunk.
- Line numbers are 1-based and inclusive, measured on the original text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from vecmem.store.models import Chunk

_HEADING_RE = re.compile(r"^#{1,3}\s")
_HEADING_MARKER_RE = re.compile(r"^#+\s*")

_PARAGRAPH_SEP = "\n\n"


@dataclass
class _Section:
    heading: str
    first_line: int  # 1-based line number of lines[0]
    lines: list[str] = field(default_factory=list)


@dataclass
class _Paragraph:
    text: str
    start_line: int
    end_line: int


class MarkdownChunker:
    """Split Markdown text into heading-attributed chunks.

    Args:
        max_chars: Upper bound on chunk text length (~750 tokens at 3000).
        min_chars: Sections or sub-chunks shorter than this (trimmed) are noise.
    """

    def __init__(self, max_chars: int = 3_000, min_chars: int = 20) -> None:
        if min_chars < 0:
            raise ValueError("min_chars must be >= 0")
        if max_chars <= min_chars:
            raise ValueError("max_chars must be greater than min_chars")
        self.max_chars = max_chars
        self.min_chars = min_chars

    def chunk(self, source_id: str, content: str) -> list[Chunk]:
        """Split *content* into unembedded chunks attributed to *source_id*.

        Chunk ids are ``<source_id>:<start_line>``.
        """
        if not content.strip():
            return []

        chunks: list[Chunk] = []
        for section in self._sections(content):
            chunks.extend(self._flush(source_id, section))
        return chunks

    # ------------------------------------------------------------------
    # Sectioning
    # ------------------------------------------------------------------

    def _sections(self, content: str) -> list[_Section]:
        sections: list[_Section] = []
        current = _Section(heading="", first_line=1)

        for lineno, line in enumerate(content.split("\n"), start=1):
            if _HEADING_RE.match(line):
                if current.lines:
                    sections.append(current)
                current = _Section(
                    heading=_HEADING_MARKER_RE.sub("", line).strip(),
                    first_line=lineno,
                    lines=[line],
                )
            else:
                current.lines.append(line)

        if current.lines:
            sections.append(current)
        return sections

    def _flush(self, source_id: str, section: _Section) -> list[Chunk]:
        paragraphs = _paragraphs(section)
        if not paragraphs:
            return []

        whole = "\n".join(section.lines).strip()
        if len(whole) < self.min_chars:
            return []

        if len(whole) <= self.max_chars:
            return [
                _make_chunk(
                    source_id,
                    section.heading,
                    whole,
                    paragraphs[0].start_line,
                    paragraphs[-1].end_line,
                )
            ]

        chunks: list[Chunk] = []
        for group in self._pack(paragraphs):
            text = _PARAGRAPH_SEP.join(p.text for p in group)
            if len(text.strip()) < self.min_chars:
                continue
            chunks.append(
                _make_chunk(
                    source_id, section.heading, text, group[0].start_line, group[-1].end_line
                )
            )
        return chunks

    def _pack(self, paragraphs: list[_Paragraph]) -> list[list[_Paragraph]]:
        """Greedily group paragraphs so each group's joined text fits ``max_chars``."""
        groups: list[list[_Paragraph]] = []
        buf: list[_Paragraph] = []
        size = 0

        for para in paragraphs:
            added = len(para.text) + (len(_PARAGRAPH_SEP) if buf else 0)
            if buf and size + added > self.max_chars:
                groups.append(buf)
                buf, size = [], 0
                added = len(para.text)
            buf.append(para)
            size += added

        if buf:
            groups.append(buf)
        return groups


def _paragraphs(section: _Section) -> list[_Paragraph]:
    """Split a section into blank-line separated blocks with their line span."""
    paragraphs: list[_Paragraph] = []
    block: list[str] = []
    block_start = 0

    for offset, line in enumerate(section.lines):
        lineno = section.first_line + offset
        if line.strip():
            if not block:
                block_start = lineno
            block.append(line.rstrip())
        elif block:
            paragraphs.append(_Paragraph("\n".join(block), block_start, lineno - 1))
            block = []

    if block:
        end = section.first_line + len(section.lines) - 1
        paragraphs.append(_Paragraph("\n".join(block), block_start, end))
    return paragraphs


def _make_chunk(source_id: str, heading: str, text: str, start: int, end: int) -> Chunk:
    return Chunk(
        id=f"{source_id}:{start}",
        source=source_id,
        text=text,
        heading=heading,
        start_line=start,
        end_line=end,
    )
