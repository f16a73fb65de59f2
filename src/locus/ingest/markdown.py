"""Markdown chunker: heading-aware sections with overlap between siblings."""

from __future__ import annotations

import re

from locus.db.models import Chunk
from locus.ingest.base import BaseChunker

# Matches H1..H6 headings at the start of a line.
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)

HEADING_SEPARATOR = " > "


class MarkdownChunker(BaseChunker):
    """Split Markdown on heading boundaries.

    Strategy:
    - Every heading starts a *section* that runs to the next heading.
    - A heading stack gives each section its breadcrumb: headings of the same
      or deeper level are popped before the current one is pushed, so
      ``# A`` / ``## B`` yields ``"A > B"``.
    - Section text is the heading text, a blank line, then the body.
    - Content before the first heading forms a section with an empty path.
    - Oversized sections are split on paragraphs, then sentences.
    - Overlap is applied last, only between chunks of the same section.
    """

    def chunk(self, content: str) -> list[Chunk]:
        if not content.strip():
            return []

        chunks: list[Chunk] = []
        for text, heading_path, start in self._sections(content):
            chunks.extend(self._split_section(text, heading_path, start))
        return self._apply_overlap(chunks)

    def _sections(self, content: str) -> list[tuple[str, str, int]]:
        """Return ``(text, heading_path, start_offset)`` for each section."""
        matches = list(_HEADING_RE.finditer(content))
        sections: list[tuple[str, str, int]] = []

        first = matches[0].start() if matches else len(content)
        preamble = content[:first].strip()
        if preamble:
            sections.append((preamble, "", content.find(preamble)))

        stack: list[tuple[int, str]] = []
        for i, match in enumerate(matches):
            level = len(match.group(1))
            title = match.group(2).strip()
            while stack and stack[-1][0] >= level:
                stack.pop()
            stack.append((level, title))

            end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
            body = content[match.end():end].strip()
            text = f"{title}\n\n{body}".strip()
            path = HEADING_SEPARATOR.join(t for _, t in stack)
            sections.append((text, path, match.start()))

        return sections
