"""Embedding provider: batched LiteLLM embeddings with a single error type.

Request/response contract:
  embed_many(texts) -> one float32 vector per text, in order
  embed_one(text)   -> a single vector (query embedding)

Any provider failure (missing key, network, auth, malformed response) is
raised as EmbeddingProviderError; callers decide whether that aborts an index
pass or degrades a search.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np

from locus.errors import EmbeddingProviderError
from locus.rag import llm_client


class Embedder(Protocol):
    model: str

    def embed_many(self, texts: list[str]) -> list[np.ndarray]: ...

    def embed_one(self, text: str) -> np.ndarray: ...


class EmbeddingProvider:
    """LiteLLM-backed embedder.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        batch_size: Maximum texts per embedding request.
        num_retries: LiteLLM retries on transient errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        batch_size: int = 20,
        num_retries: int = 3,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.batch_size = batch_size
        self.num_retries = num_retries

    def embed_many(self, texts: list[str]) -> list[np.ndarray]:
        if not texts:
            return []
        try:
            llm_client.validate_api_key(self.model)
        except EnvironmentError as exc:
            raise EmbeddingProviderError(str(exc)) from exc

        vectors: list[np.ndarray] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                raw = llm_client.embed_texts(self.model, batch, num_retries=self.num_retries)
            except Exception as exc:
                raise EmbeddingProviderError(
                    f"Embedding request to '{self.model}' failed: {exc}"
                ) from exc
            if len(raw) != len(batch):
                raise EmbeddingProviderError(
                    f"Embedding provider returned {len(raw)} vectors for {len(batch)} texts"
                )
            vectors.extend(np.asarray(v, dtype=np.float32) for v in raw)
        return vectors

    def embed_one(self, text: str) -> np.ndarray:
        return self.embed_many([text])[0]
