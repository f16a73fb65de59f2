"""Wiring shared by the CLI commands: open the database and build the services."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from locus.cli.errors import err_config, err_embedding_model_mismatch, err_no_db
from locus.config import ConfigError, LocusConfig, load_config
from locus.db.connection import Database
from locus.db.repository import EMBEDDING_MODEL_KEY, Repository
from locus.db.schema import initialize
from locus.graph.links import LinkStore
from locus.ingest.chat import ChatChunker
from locus.ingest.embedder import Embedder, EmbeddingProvider
from locus.ingest.indexer import BackgroundIndexer, Indexer
from locus.ingest.markdown import MarkdownChunker
from locus.knowledge.chats import ChatHistoryIndex
from locus.knowledge.documents import LargeDocumentLibrary
from locus.knowledge.files import KnowledgeBase
from locus.rag.reranker import Reranker, resolve_backend
from locus.rag.retriever import HybridRetriever

console = Console()

DEFAULT_DB = Path(".locus.db")


@dataclass
class Workspace:
    conn: sqlite3.Connection
    repo: Repository
    config: LocusConfig
    embedder: Embedder
    indexer: Indexer
    background: BackgroundIndexer
    retriever: HybridRetriever
    links: LinkStore
    kb: KnowledgeBase
    documents: LargeDocumentLibrary
    chats: ChatHistoryIndex

    def close(self) -> None:
        """Drain queued index passes, then close the connection."""
        self.background.shutdown(wait=True)
        self.conn.close()


def open_db(db_path: Path) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def load_config_or_exit(global_config_path: Path | None = None) -> LocusConfig:
    try:
        return load_config(global_config_path=global_config_path)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def build_workspace(conn: sqlite3.Connection, cfg: LocusConfig) -> Workspace:
    repo = Repository(conn)
    chunking = cfg.chunking
    embedder = EmbeddingProvider(cfg.embedding.model, batch_size=cfg.embedding.batch_size)
    indexer = Indexer(
        repo,
        embedder,
        MarkdownChunker(chunking.max_tokens, chunking.overlap_tokens, chunking.min_tokens),
    )
    background = BackgroundIndexer(indexer)
    reranker = Reranker(
        resolve_backend(cfg.rerank.backend),
        cohere_model=cfg.rerank.cohere_model,
        llm_model=cfg.rerank.llm_model,
    )
    retriever = HybridRetriever(repo, embedder, cfg.search, reranker, cfg.rerank)
    links = LinkStore(repo)
    return Workspace(
        conn=conn,
        repo=repo,
        config=cfg,
        embedder=embedder,
        indexer=indexer,
        background=background,
        retriever=retriever,
        links=links,
        kb=KnowledgeBase(repo, background, retriever, links),
        documents=LargeDocumentLibrary(repo, indexer, retriever),
        chats=ChatHistoryIndex(
            repo,
            background,
            retriever,
            ChatChunker(chunking.max_tokens, chunking.overlap_tokens, chunking.min_tokens),
        ),
    )


def check_embedding_model(repo: Repository, model: str) -> None:
    """Pin the database to one embedding model; vectors from two models never mix."""
    stored = repo.get_meta(EMBEDDING_MODEL_KEY)
    if stored is None or repo.count_records() == 0:
        repo.set_meta(EMBEDDING_MODEL_KEY, model)
        return
    if stored != model:
        console.print(err_embedding_model_mismatch(stored, model))
        raise typer.Exit(1)


@contextmanager
def open_workspace(db_path: Path, *, check_model: bool = True) -> Iterator[Workspace]:
    """Open an existing database and yield its services; exits 1 if missing.

    With *check_model* off the caller must run check_embedding_model itself
    before embedding anything.
    """
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    cfg = load_config_or_exit()
    conn = open_db(db_path)
    try:
        ws = build_workspace(conn, cfg)
    except ValueError as exc:
        conn.close()
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    try:
        if check_model:
            check_embedding_model(ws.repo, cfg.embedding.model)
        yield ws
    finally:
        ws.close()
