"""Use case that embeds chunks and builds the in-memory index."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from application.services.provider_calls import ProviderCaller
from domain.entities import Chunk, EmbeddedChunk
from domain.errors import ConfigError, ProviderError
from domain.interfaces import Embedder
from infrastructure.storage.in_memory_vector_index import InMemoryVectorIndex

logger = logging.getLogger(__name__)


async def embed_chunks(
    chunks: Sequence[Chunk],
    *,
    embedder: Embedder,
    caller: ProviderCaller,
    batch_size: int,
    max_concurrency: int = 1,
    timeout: float = 60.0,
) -> list[EmbeddedChunk]:
    """Embed ``chunks`` in batches of at most ``batch_size`` texts.

    Up to ``max_concurrency`` batches run at once. Vectors are matched to
    chunks by batch position, so completion order does not matter.
    """

    if batch_size <= 0:
        raise ConfigError(f"batch_size must be positive, got {batch_size}")
    if max_concurrency <= 0:
        raise ConfigError(f"max_concurrency must be positive, got {max_concurrency}")

    batches = [list(chunks[i : i + batch_size]) for i in range(0, len(chunks), batch_size)]
    semaphore = asyncio.Semaphore(max_concurrency)

    async def embed_batch(number: int, batch: list[Chunk]) -> list[list[float]]:
        async with semaphore:
            logger.debug("Embedding batch %d/%d (%d texts)", number + 1, len(batches), len(batch))
            vectors = await caller.call(
                embedder.embed_texts,
                [chunk.text for chunk in batch],
                timeout=timeout,
                operation=f"embed batch {number + 1}",
            )
        if len(vectors) != len(batch):
            raise ProviderError(
                f"{embedder.model_id} returned {len(vectors)} vectors for {len(batch)} texts"
            )
        return vectors

    tasks = [asyncio.ensure_future(embed_batch(number, batch)) for number, batch in enumerate(batches)]
    try:
        per_batch = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise

    embedded: list[EmbeddedChunk] = []
    for batch, vectors in zip(batches, per_batch):
        for chunk, vector in zip(batch, vectors):
            embedded.append(EmbeddedChunk(chunk=chunk, vector=tuple(float(value) for value in vector)))
    return embedded


async def build_index(
    chunks: Sequence[Chunk],
    *,
    embedder: Embedder,
    caller: ProviderCaller,
    batch_size: int,
    max_concurrency: int = 1,
    timeout: float = 60.0,
) -> InMemoryVectorIndex:
    """Embed all chunks and return a read-only index over them."""

    embedded = await embed_chunks(
        chunks,
        embedder=embedder,
        caller=caller,
        batch_size=batch_size,
        max_concurrency=max_concurrency,
        timeout=timeout,
    )
    return InMemoryVectorIndex.build(embedded)


__all__ = ["embed_chunks", "build_index"]
