"""In-memory collaborators shared by the test modules."""
from __future__ import annotations

import threading
import time
from typing import Mapping, Sequence

from application.config import RetryPolicy
from domain.entities import Chunk, SummaryAnswer
from domain.errors import PersistError
from domain.interfaces import ArtifactStore, Embedder, Fetcher, Summarizer
from infrastructure.embedding.hash_embedder import HashEmbedder

NO_WAIT_RETRY = RetryPolicy(max_attempts=4, initial_delay=0.0, max_delay=0.0, jitter=0.0)

NEWS_HTML = """
<html><body>
  <ul class="headlines">
    <li><a href="/article/001">Parliament passes the annual budget after a late session</a></li>
    <li><a href="https://news.example.com/article/002">Central bank keeps the base rate unchanged</a></li>
    <li>Opposition leader calls for a new inquiry <a href="/article/003">read</a></li>
    <li>   </li>
  </ul>
  <p>Not a list item</p>
</body></html>
"""


class StubFetcher(Fetcher):
    def __init__(self, body: bytes = b"", *, failures: Sequence[Exception] = ()) -> None:
        self.body = body
        self.calls: list[str] = []
        self._failures = list(failures)

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if self._failures:
            raise self._failures.pop(0)
        return self.body


class StubEmbedder(Embedder):
    """Returns fixed vectors for known texts and hash vectors otherwise."""

    def __init__(
        self,
        vectors: Mapping[str, Sequence[float]] | None = None,
        *,
        failures: Sequence[Exception] = (),
        dimension: int = 8,
    ) -> None:
        self.calls: list[list[str]] = []
        self._vectors = dict(vectors or {})
        self._failures = list(failures)
        self._fallback = HashEmbedder(dimension=dimension)
        self._lock = threading.Lock()

    @property
    def model_id(self) -> str:
        return "stub-embedder"

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        with self._lock:
            self.calls.append(list(texts))
            if self._failures:
                raise self._failures.pop(0)
        return [
            list(self._vectors[text]) if text in self._vectors else self._fallback.embed_texts([text])[0]
            for text in texts
        ]


class StubSummarizer(Summarizer):
    def __init__(self, *, delay: float = 0.0, failures: Sequence[Exception] = ()) -> None:
        self.calls: list[tuple[str, list[Chunk]]] = []
        self.started = threading.Event()
        self._delay = delay
        self._failures = list(failures)

    @property
    def model_id(self) -> str:
        return "stub-chat"

    def summarize(self, query: str, evidence: Sequence[Chunk]) -> SummaryAnswer:
        self.calls.append((query, list(evidence)))
        self.started.set()
        if self._delay:
            time.sleep(self._delay)
        if self._failures:
            raise self._failures.pop(0)
        return SummaryAnswer(
            text=f"summary of {len(evidence)} chunks",
            query=query,
            evidence=tuple(evidence),
            model_id=self.model_id,
        )


class MemoryArtifactStore(ArtifactStore):
    """Keeps artifacts by kind; kinds in ``failing_kinds`` raise ``PersistError``."""

    def __init__(self, *, failing_kinds: Sequence[str] = ()) -> None:
        self.saved: dict[str, str | bytes] = {}
        self.deleted: list[str] = []
        self._failing_kinds = set(failing_kinds)

    def save(self, content: str | bytes, kind: str) -> str:
        if kind in self._failing_kinds:
            raise PersistError(f"disk full while writing {kind}")
        self.saved[kind] = content
        return f"memory://{kind}"

    def delete(self, location: str) -> None:
        self.deleted.append(location)
        self.saved.pop(location.removeprefix("memory://"), None)


class FakeClock:
    """Advances one second per reading."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now
