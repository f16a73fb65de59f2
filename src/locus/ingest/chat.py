"""Chat transcript chunker."""

from __future__ import annotations

from locus.db.models import ChatMessage, Chunk
from locus.ingest.base import BaseChunker

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def format_transcript(messages: list[ChatMessage]) -> str:
    """Render user/assistant turns as ``[User]: ...`` blocks.

    Other roles and messages without text are skipped.
    """
    blocks = [
        f"[{_ROLE_LABELS[m.role]}]: {m.text.strip()}"
        for m in messages
        if m.role in _ROLE_LABELS and m.text and m.text.strip()
    ]
    return "\n\n".join(blocks)


class ChatChunker(BaseChunker):
    """Chunk a chat transcript; every chunk has an empty heading path."""

    def chunk(self, content: str) -> list[Chunk]:
        if not content.strip():
            return []
        return self._apply_overlap(self._split_section(content, "", 0))

    def chunk_messages(self, messages: list[ChatMessage]) -> list[Chunk]:
        return self.chunk(format_transcript(messages))
