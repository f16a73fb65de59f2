"""Chat history index: transcripts embedded so past conversations are searchable."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import replace

import structlog

from locus.db.models import ChatMessage, OwnerKind
from locus.db.repository import Repository
from locus.ingest.chat import ChatChunker
from locus.ingest.indexer import BackgroundIndexer
from locus.rag.retriever import HybridRetriever, SearchOptions, SearchResult

log = structlog.get_logger()


class ChatHistoryIndex:
    """Index chats as records of kind ``chat``; titles are kept for display and boosting."""

    def __init__(
        self,
        repo: Repository,
        background: BackgroundIndexer,
        retriever: HybridRetriever,
        chunker: ChatChunker | None = None,
    ) -> None:
        self.repo = repo
        self.background = background
        self.retriever = retriever
        self.chunker = chunker or ChatChunker()

    def index_chat(self, chat_id: str, title: str, messages: list[ChatMessage]) -> Future:
        """Queue a (re-)index of one chat; unchanged turns keep their vectors."""
        self.repo.upsert_chat(chat_id, title)
        chunks = self.chunker.chunk_messages(messages)
        return self.background.submit(OwnerKind.CHAT, chat_id, chunks=chunks)

    def delete_chat(self, chat_id: str) -> bool:
        existed = self.repo.delete_chat(chat_id)
        self.repo.delete_owner_records(OwnerKind.CHAT, chat_id)
        self.background.submit_delete(OwnerKind.CHAT, chat_id)
        return existed

    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        chat_ids: list[str] | None = None,
    ) -> list[SearchResult]:
        opts = options or SearchOptions()
        if chat_ids is not None:
            opts = replace(opts, owner_ids=list(chat_ids))
        return self.retriever.search(query, OwnerKind.CHAT, opts, titles=self.repo.chat_titles())
