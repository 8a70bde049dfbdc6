"""Brute-force cosine similarity index held in memory.

Exact search costs one matrix-vector product per query, which is fine for a
single page worth of chunks (hundreds to low thousands). Larger corpora would
need an approximate index; nothing in a one-page run calls for one.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np

from domain.entities import Chunk, EmbeddedChunk, QueryResult, RetrievalResult
from domain.errors import ConfigError, DimensionMismatchError, EmptyInputError


class InMemoryVectorIndex:
    """Read-only index over L2-normalised chunk vectors."""

    def __init__(self, chunks: Sequence[Chunk], matrix: np.ndarray) -> None:
        self._chunks = tuple(chunks)
        self._matrix = matrix
        self._matrix.setflags(write=False)

    @classmethod
    def build(cls, embedded_chunks: Sequence[EmbeddedChunk]) -> InMemoryVectorIndex:
        if not embedded_chunks:
            raise EmptyInputError("Cannot build an index from zero chunks.")
        dimension = len(embedded_chunks[0].vector)
        if dimension == 0:
            raise DimensionMismatchError("Embedding vectors must not be empty.")
        for position, item in enumerate(embedded_chunks):
            if len(item.vector) != dimension:
                raise DimensionMismatchError(
                    f"Vector {position} has dimension {len(item.vector)}, expected {dimension}."
                )
        matrix = np.array([item.vector for item in embedded_chunks], dtype=np.float64)
        return cls([item.chunk for item in embedded_chunks], cls._normalize(matrix))

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def dimension(self) -> int:
        return int(self._matrix.shape[1])

    def query(self, vector: Sequence[float], k: int) -> QueryResult:
        if k <= 0:
            raise ConfigError(f"k must be positive, got {k}")
        if len(vector) != self.dimension:
            raise DimensionMismatchError(
                f"Query vector has dimension {len(vector)}, index has {self.dimension}."
            )
        query = np.asarray(vector, dtype=np.float64)
        norm = float(np.linalg.norm(query)) or 1.0
        scores = self._matrix @ (query / norm)
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[:k]
        return QueryResult(
            tuple(RetrievalResult(chunk=self._chunks[i], score=float(scores[i])) for i in order)
        )

    @staticmethod
    def _normalize(matrix: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return matrix / norms


__all__ = ["InMemoryVectorIndex"]
