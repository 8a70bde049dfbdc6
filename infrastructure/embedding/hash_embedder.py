"""Embedder that averages hashed word vectors, for offline runs."""
from __future__ import annotations

import hashlib
import math
from collections import Counter
from typing import Sequence

from domain.interfaces import Embedder


class HashEmbedder(Embedder):
    """Produces deterministic vectors by hashing individual words.

    Texts sharing words get similar vectors, which is enough to exercise the
    pipeline without a network or a model download.
    """

    def __init__(self, dimension: int = 64) -> None:
        self._dimension = dimension

    @property
    def model_id(self) -> str:
        return f"hash-words-{self._dimension}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _word_vector(self, word: str) -> list[float]:
        digest = hashlib.md5(word.encode("utf-8")).digest()
        return [digest[i % len(digest)] / 255.0 - 0.5 for i in range(self._dimension)]

    def _combine(self, words: Sequence[str]) -> list[float]:
        counts = Counter(word.lower() for word in words if word.strip())
        vector = [0.0] * self._dimension
        total = sum(counts.values()) or 1
        for word, count in counts.items():
            for idx, value in enumerate(self._word_vector(word)):
                vector[idx] += value * count / total
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._combine(text.split()) for text in texts]


__all__ = ["HashEmbedder"]
