"""Abstract interfaces for the newsdigest pipeline collaborators."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from domain.entities import Chunk, SourceDocument, SummaryAnswer


class Fetcher(ABC):
    """Retrieves the raw bytes of the source page."""

    @abstractmethod
    def fetch(self, url: str) -> bytes:
        """Return the response body; raise ``FetchError`` on failure."""


class TextExtractor(ABC):
    """Turns a fetched page into a source document."""

    @abstractmethod
    def extract(self, source: bytes | str, selector: str, *, url: str = "") -> SourceDocument:
        """Return the text of every element matching ``selector``."""


class ChunkSplitter(ABC):
    """Splits a document into overlapping bounded-size chunks."""

    @abstractmethod
    def split(self, text: str) -> list[Chunk]:
        """Return ordered chunks covering ``text``."""

    @abstractmethod
    def split_document(self, document: SourceDocument) -> list[Chunk]:
        """Return chunks of ``document`` carrying its metadata."""


class Embedder(ABC):
    """Turns text into dense vectors of a fixed dimension."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @abstractmethod
    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a batch of texts, one vector per input in the same order."""


class Summarizer(ABC):
    """Answers a query from retrieved evidence with a generative model."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the chat model identifier."""

    @abstractmethod
    def summarize(self, query: str, evidence: Sequence[Chunk]) -> SummaryAnswer:
        """Return an answer grounded on ``evidence``."""


class ArtifactStore(ABC):
    """Durable storage for the raw page and the final answer."""

    @abstractmethod
    def save(self, content: str | bytes, kind: str) -> str:
        """Store ``content`` under ``kind`` and return its location."""

    @abstractmethod
    def delete(self, location: str) -> None:
        """Remove an artifact previously returned by ``save``; missing is fine."""


__all__ = [
    "Fetcher",
    "TextExtractor",
    "ChunkSplitter",
    "Embedder",
    "Summarizer",
    "ArtifactStore",
]
