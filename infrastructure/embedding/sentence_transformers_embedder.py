"""Embedder backed by a local sentence-transformers model."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sentence_transformers import SentenceTransformer

from domain.interfaces import Embedder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SentenceTransformersConfig:
    model_name: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    device: str = "cpu"
    normalize_embeddings: bool = True
    batch_size: int = 16
    passage_prefix: str | None = None


class SentenceTransformersEmbedder(Embedder):
    """Runs the model in-process; the first call downloads it if needed."""

    def __init__(self, config: SentenceTransformersConfig | None = None) -> None:
        self._config = config or SentenceTransformersConfig()
        logger.info("Loading sentence-transformers model %s", self._config.model_name)
        self._model = SentenceTransformer(self._config.model_name, device=self._config.device)

    @property
    def model_id(self) -> str:
        return self._config.model_name

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        prefix = self._config.passage_prefix or ""
        prefixed = [f"{prefix}{text}" for text in texts]
        logger.debug("Encoding %d texts with %s", len(prefixed), self._config.model_name)
        embeddings = self._model.encode(
            prefixed,
            batch_size=self._config.batch_size,
            normalize_embeddings=self._config.normalize_embeddings,
            show_progress_bar=False,
        )
        return embeddings.tolist()


__all__ = ["SentenceTransformersEmbedder", "SentenceTransformersConfig"]
