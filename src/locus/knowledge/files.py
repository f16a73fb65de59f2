"""Knowledge base: path-addressed notes with background embedding.

Writes never wait for embeddings: the index pass is queued on the
BackgroundIndexer and its failures are only logged. Deleting a file cascades
to its embedding records and to every link that touches it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from locus.db.models import KnowledgeFile, OwnerKind, normalize_path
from locus.db.repository import EMBEDDING_MODEL_KEY, Repository
from locus.graph.links import LinkStore
from locus.ingest.indexer import BackgroundIndexer, IndexStatus
from locus.rag.retriever import HybridRetriever, SearchOptions, SearchResult

log = structlog.get_logger()


@dataclass
class ReindexResult:
    indexed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class KnowledgeBase:
    """File operations over the ``knowledge_files`` table.

    Args:
        repo: Open Repository.
        background: Single-writer background indexer.
        retriever: Hybrid retriever used by ``search()``.
        links: Link store for cascading deletes; built from *repo* if omitted.
    """

    def __init__(
        self,
        repo: Repository,
        background: BackgroundIndexer,
        retriever: HybridRetriever,
        links: LinkStore | None = None,
    ) -> None:
        self.repo = repo
        self.background = background
        self.retriever = retriever
        self.links = links or LinkStore(repo)

    def write_file(self, path: str, content: str, *, index: bool = True) -> KnowledgeFile:
        """Create or overwrite a file and queue it for (re-)indexing.

        Raises:
            ValueError: If *path* is the root.
        """
        p = _file_path(path)
        file = self.repo.upsert_file(p, content)
        if index:
            self.background.submit(OwnerKind.KNOWLEDGE, p, content)
        return file

    def append_file(self, path: str, content: str) -> KnowledgeFile:
        """Append to a file (created if missing), separated by a newline."""
        p = _file_path(path)
        existing = self.repo.get_file(p)
        current = existing.content if existing else ""
        separator = "\n" if current and not current.endswith("\n") else ""
        return self.write_file(p, current + separator + content)

    def read_file(self, path: str) -> str:
        """Return file content.

        Raises:
            FileNotFoundError: If no file exists at *path*.
        """
        p = normalize_path(path)
        file = self.repo.get_file(p)
        if file is None:
            raise FileNotFoundError(f"Not found: {p}")
        return file.content

    def exists(self, path: str) -> bool:
        return self.repo.file_exists(normalize_path(path))

    def list_folder(self, path: str = "/") -> list[str]:
        """Immediate children (files and implied folders) of *path*, sorted."""
        folder = normalize_path(path)
        prefix = "/" if folder == "/" else folder + "/"
        children: set[str] = set()
        for file in self.repo.list_files(folder):
            if file.path.startswith(prefix):
                rest = file.path[len(prefix):]
                if rest:
                    children.add(rest.split("/", 1)[0])
        return sorted(children)

    def list_files(self, path: str = "/") -> list[KnowledgeFile]:
        return self.repo.list_files(normalize_path(path))

    def delete_file(self, path: str) -> bool:
        """Delete a file, its embeddings and every link touching it."""
        p = normalize_path(path)
        deleted = self.repo.delete_file(p)
        if not deleted:
            return False
        records = self.repo.delete_owner_records(OwnerKind.KNOWLEDGE, p)
        # A pass queued before the delete may still write records; sweep after it.
        self.background.submit_delete(OwnerKind.KNOWLEDGE, p)
        links = self.links.delete_links_for_file(p)
        log.info("Deleted file", path=p, embeddings=records, links=links)
        return True

    def delete_folder(self, path: str) -> int:
        """Delete every file under *path*; returns the number of files removed."""
        return sum(1 for f in self.repo.list_files(normalize_path(path)) if self.delete_file(f.path))

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        return self.retriever.search(query, OwnerKind.KNOWLEDGE, options)

    def reindex_all(self) -> ReindexResult:
        """Re-run the index pass for every file and wait for it.

        Chunks whose hash is already stored keep their vectors, so this only
        embeds what is missing. Blank files are skipped; per-file failures
        are collected as ``"<path>: <error>"``.
        """
        result = ReindexResult()
        queued = []
        for file in self.repo.list_files("/"):
            if not file.content.strip():
                result.skipped += 1
                continue
            queued.append((file.path, self.background.submit(OwnerKind.KNOWLEDGE, file.path, file.content)))

        for path, future in queued:
            report = future.result()
            if report.status is IndexStatus.FAILED:
                result.errors.append(f"{path}: {report.error}")
            else:
                result.indexed += 1

        log.info("Reindexed knowledge base", indexed=result.indexed, skipped=result.skipped, errors=len(result.errors))
        return result

    def clear_embeddings(self) -> int:
        """Drop every knowledge embedding; returns the number removed.

        The embedding-model pin is released once no records of any kind are
        left, so the next index pass may use a different model.
        """
        self.background.wait()
        removed = self.repo.delete_all_records(OwnerKind.KNOWLEDGE)
        if self.repo.count_records() == 0:
            self.repo.delete_meta(EMBEDDING_MODEL_KEY)
        log.info("Cleared knowledge embeddings", removed=removed)
        return removed


def _file_path(path: str) -> str:
    p = normalize_path(path)
    if p == "/":
        raise ValueError("A file path is required, got '/'")
    return p
