"""Large-document library: upload, index, search and manage text documents.

Unlike knowledge files, uploads index synchronously so the caller can watch
the status move uploading → indexing → ready (or error).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Callable

import structlog

from locus.db.models import DocumentMetadata, DocumentStatus, OwnerKind, utc_now
from locus.db.repository import Repository
from locus.ingest.indexer import Indexer, IndexStatus
from locus.rag.retriever import HybridRetriever, SearchOptions, SearchResult

log = structlog.get_logger()

_TEXT_MIME_TYPES = frozenset(["application/json", "application/xml"])

ProgressCallback = Callable[[DocumentStatus, str], None]


def is_supported_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES


@dataclass
class LibraryStats:
    documents: int
    total_size: int
    total_chunks: int
    ready: int


class LargeDocumentLibrary:
    """Large uploaded documents stored as embedding records of kind ``document``.

    Args:
        repo: Open Repository.
        indexer: Indexer whose chunker is used for document text.
        retriever: Hybrid retriever used by ``search()``.
    """

    def __init__(self, repo: Repository, indexer: Indexer, retriever: HybridRetriever) -> None:
        self.repo = repo
        self.indexer = indexer
        self.retriever = retriever

    def upload_text(
        self,
        filename: str,
        text: str,
        mime_type: str = "text/plain",
        *,
        on_progress: ProgressCallback | None = None,
    ) -> DocumentMetadata:
        """Store and index *text*; returns the final metadata.

        An embedding failure does not raise: the document ends in ``error``
        status with the provider message in ``error_message``. Any other
        failure is recorded the same way and then re-raised.

        Raises:
            ValueError: If *mime_type* is not a text type.
        """
        if not is_supported_mime_type(mime_type):
            raise ValueError(f"Unsupported file type: {mime_type}")

        doc = DocumentMetadata(
            id=uuid.uuid4().hex,
            filename=filename,
            mime_type=mime_type,
            file_size=len(text.encode("utf-8")),
            status=DocumentStatus.UPLOADING,
            uploaded_at=utc_now(),
        )
        self._set_status(doc, DocumentStatus.UPLOADING, "Reading document...", on_progress)
        self._set_status(doc, DocumentStatus.INDEXING, "Chunking and embedding...", on_progress)

        try:
            report = self.indexer.index(OwnerKind.DOCUMENT, doc.id, text)
        except Exception as exc:
            doc.error_message = str(exc)
            self._set_status(doc, DocumentStatus.ERROR, str(exc), on_progress)
            raise
        doc.chunk_count = report.chunk_count
        if report.status is IndexStatus.FAILED:
            doc.error_message = report.error
            self._set_status(doc, DocumentStatus.ERROR, report.error or "Indexing failed", on_progress)
            return doc

        doc.indexed_at = utc_now()
        self._set_status(doc, DocumentStatus.READY, f"Indexed {doc.chunk_count} chunks", on_progress)
        return doc

    def get_document(self, doc_id: str) -> DocumentMetadata | None:
        return self.repo.get_document(doc_id)

    def list_documents(self) -> list[DocumentMetadata]:
        return self.repo.list_documents()

    def rename_document(self, doc_id: str, filename: str) -> DocumentMetadata | None:
        doc = self.repo.get_document(doc_id)
        if doc is None:
            return None
        doc.filename = filename
        self.repo.save_document(doc)
        return doc

    def delete_document(self, doc_id: str) -> bool:
        """Remove the document and all of its chunk records."""
        if not self.repo.delete_document(doc_id):
            return False
        self.indexer.delete(OwnerKind.DOCUMENT, doc_id)
        return True

    def stats(self) -> LibraryStats:
        docs = self.repo.list_documents()
        return LibraryStats(
            documents=len(docs),
            total_size=sum(d.file_size for d in docs),
            total_chunks=sum(d.chunk_count for d in docs),
            ready=sum(1 for d in docs if d.status is DocumentStatus.READY),
        )

    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        document_ids: list[str] | None = None,
    ) -> list[SearchResult]:
        """Search ready documents, optionally limited to *document_ids*."""
        docs = {d.id: d for d in self.repo.list_documents() if d.status is DocumentStatus.READY}
        owners = [i for i in document_ids if i in docs] if document_ids is not None else list(docs)
        opts = replace(options or SearchOptions(), owner_ids=owners)
        return self.retriever.search(
            query,
            OwnerKind.DOCUMENT,
            opts,
            titles={d.id: d.filename for d in docs.values()},
        )

    def _set_status(
        self,
        doc: DocumentMetadata,
        status: DocumentStatus,
        message: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        doc.status = status
        self.repo.save_document(doc)
        log.debug("Document status", doc_id=doc.id, filename=doc.filename, status=status.value, detail=message)
        if on_progress is not None:
            on_progress(status, message)
