"""Use case that retrieves the chunks most similar to a query."""
from __future__ import annotations

from application.services.provider_calls import ProviderCaller
from domain.entities import QueryResult
from domain.errors import ProviderError
from domain.interfaces import Embedder
from infrastructure.storage.in_memory_vector_index import InMemoryVectorIndex


class Retriever:
    """Embed the query as a one-item batch, then query the index."""

    def __init__(
        self,
        *,
        embedder: Embedder,
        index: InMemoryVectorIndex,
        caller: ProviderCaller | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._caller = caller or ProviderCaller()
        self._timeout = timeout

    async def retrieve(self, query: str, k: int) -> QueryResult:
        vectors = await self._caller.call(
            self._embedder.embed_texts,
            [query],
            timeout=self._timeout,
            operation="embed query",
        )
        if len(vectors) != 1:
            raise ProviderError(f"{self._embedder.model_id} returned {len(vectors)} vectors for the query")
        return self._index.query(vectors[0], k)


__all__ = ["Retriever"]
