"""Base chunker: budgeted paragraph/sentence splitting and overlap."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import replace

from locus.db.models import Chunk

_PARAGRAPH_RE = re.compile(r"\n\n+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_SENTENCE_BREAK_RE = re.compile(r"[.!?]\s+")

# Overlap tails are only trimmed at a boundary lying past this share of the window.
_MIN_BOUNDARY_FRACTION = 0.3


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()``: they cut the input into sections (each
    with a heading path), hand every section to ``_split_section()``, and
    finish with ``_apply_overlap()``.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(
        self,
        max_tokens: int = 512,
        overlap_tokens: int = 75,
        min_tokens: int = 50,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if not 0 <= overlap_tokens < max_tokens:
            raise ValueError("overlap_tokens must be >= 0 and smaller than max_tokens")
        if min_tokens < 0:
            raise ValueError("min_tokens must be >= 0")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.min_tokens = min_tokens

    @abstractmethod
    def chunk(self, content: str) -> list[Chunk]:
        """Split *content* into Chunks indexed 0..n-1 in document order.

        Empty or whitespace-only content yields ``[]``.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: ceil(chars / 4)."""
        return math.ceil(len(text) / 4)

    # ------------------------------------------------------------------
    # Section splitting
    # ------------------------------------------------------------------

    def _split_section(self, text: str, heading_path: str, start_offset: int) -> list[Chunk]:
        """Split one section into budgeted chunks.

        Paragraphs are accumulated until the next one would exceed
        ``max_tokens``; a paragraph that is over budget on its own is split
        on sentence boundaries. A single sentence over budget is kept whole.
        """
        text = text.strip()
        if not text:
            return []
        if self.count_tokens(text) <= self.max_tokens:
            return [Chunk(text, 0, heading_path, start_offset, start_offset + len(text))]

        # (piece text, first fragment used to locate it in the section)
        pieces: list[tuple[str, str]] = []
        current = ""
        anchor = ""

        for paragraph in _split_nonempty(_PARAGRAPH_RE, text):
            combined = f"{current}\n\n{paragraph}" if current else paragraph
            if self.count_tokens(combined) <= self.max_tokens:
                if not current:
                    anchor = paragraph
                current = combined
                continue

            if current:
                pieces.append((current, anchor))

            if self.count_tokens(paragraph) <= self.max_tokens:
                current, anchor = paragraph, paragraph
                continue

            sentence_chunk = ""
            sentence_anchor = ""
            for sentence in _split_nonempty(_SENTENCE_RE, paragraph):
                joined = f"{sentence_chunk} {sentence}" if sentence_chunk else sentence
                if self.count_tokens(joined) <= self.max_tokens:
                    if not sentence_chunk:
                        sentence_anchor = sentence
                    sentence_chunk = joined
                else:
                    if sentence_chunk:
                        pieces.append((sentence_chunk, sentence_anchor))
                    sentence_chunk, sentence_anchor = sentence, sentence
            current, anchor = sentence_chunk, sentence_anchor

        if current:
            pieces.append((current, anchor))

        chunks: list[Chunk] = []
        cursor = 0
        for piece, first in pieces:
            found = text.find(first, cursor)
            pos = found if found >= 0 else cursor
            chunks.append(
                Chunk(
                    text=piece,
                    index=0,
                    heading_path=heading_path,
                    start_offset=start_offset + pos,
                    end_offset=start_offset + pos + len(piece),
                )
            )
            cursor = pos + len(first)
        return chunks

    # ------------------------------------------------------------------
    # Overlap
    # ------------------------------------------------------------------

    def _apply_overlap(self, chunks: list[Chunk]) -> list[Chunk]:
        """Prepend the previous chunk's tail and re-index 0..n-1.

        The tail is only added between chunks of the same heading path and
        only when it is at least ``min_tokens / 2`` tokens long.
        """
        if self.overlap_tokens == 0 or len(chunks) < 2:
            return [replace(c, index=i) for i, c in enumerate(chunks)]

        result = [replace(chunks[0], index=0)]
        for i in range(1, len(chunks)):
            prev, cur = chunks[i - 1], chunks[i]
            text = cur.text
            if prev.heading_path == cur.heading_path:
                tail = overlap_tail(prev.text, self.overlap_tokens * 4)
                if tail and self.count_tokens(tail) >= self.min_tokens / 2:
                    text = f"{tail}\n\n{cur.text}"
            result.append(replace(cur, text=text, index=i))
        return result


def overlap_tail(text: str, max_chars: int) -> str:
    """Last *max_chars* of *text*, trimmed to start at a sentence or paragraph.

    The cut is taken at the first sentence break beyond 30% of the window,
    else at a paragraph break, else the raw window is kept.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text.strip()

    tail = text[-max_chars:]
    floor = int(len(tail) * _MIN_BOUNDARY_FRACTION)

    for match in _SENTENCE_BREAK_RE.finditer(tail):
        if match.start() >= floor:
            return tail[match.end():].strip()

    para = tail.find("\n\n", floor)
    if para >= 0:
        return tail[para + 2:].strip()
    return tail.strip()


def _split_nonempty(pattern: re.Pattern[str], text: str) -> list[str]:
    return [p.strip() for p in pattern.split(text) if p.strip()]
