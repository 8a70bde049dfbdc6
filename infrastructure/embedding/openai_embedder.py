"""Embedder backed by the OpenAI embeddings endpoint."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Sequence

import requests

from domain.errors import ProviderError, Unauthorized
from domain.interfaces import Embedder
from infrastructure.http_client import post_json

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OpenAIEmbedderConfig:
    model: str = "text-embedding-3-small"
    api_key: str | None = None
    url: str = "https://api.openai.com/v1/embeddings"
    request_timeout: float = 60.0


class OpenAIEmbedder(Embedder):
    """Embed texts with one HTTP request per batch."""

    def __init__(self, config: OpenAIEmbedderConfig | None = None, *, session: requests.Session | None = None) -> None:
        self._config = config or OpenAIEmbedderConfig()
        self._session = session or requests.Session()

    @property
    def model_id(self) -> str:
        return self._config.model

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        api_key = self._config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise Unauthorized("Missing OpenAI API key.")
        logger.debug("Embedding %d texts with %s", len(texts), self._config.model)
        payload = post_json(
            self._session,
            self._config.url,
            provider="openai-embeddings",
            payload={"model": self._config.model, "input": list(texts)},
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=self._config.request_timeout,
        )
        try:
            # The API may reorder items; ``index`` ties each vector to its input.
            items = sorted(payload["data"], key=lambda item: item["index"])
            return [list(item["embedding"]) for item in items]
        except (KeyError, TypeError) as exc:
            raise ProviderError(f"Unexpected embeddings response: {list(payload)}") from exc


__all__ = ["OpenAIEmbedder", "OpenAIEmbedderConfig"]
