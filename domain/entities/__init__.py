"""Domain entities for the newsdigest pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator


@dataclass(frozen=True, slots=True)
class SourceDocument:
    """Text extracted from the fetched page, created once per run."""

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Chunk:
    """A contiguous slice ``content[start:end]`` of a source document."""

    id: str
    document_id: str
    text: str
    start: int
    end: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EmbeddedChunk:
    """A chunk paired with its embedding vector."""

    chunk: Chunk
    vector: tuple[float, ...]


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    """A single retrieved chunk and its cosine similarity to the query."""

    chunk: Chunk
    score: float


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Retrieved chunks, most similar first."""

    results: tuple[RetrievalResult, ...] = ()

    def __iter__(self) -> Iterator[RetrievalResult]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def chunks(self) -> list[Chunk]:
        return [result.chunk for result in self.results]

    @property
    def scores(self) -> list[float]:
        return [result.score for result in self.results]


@dataclass(frozen=True, slots=True)
class SummaryAnswer:
    """Generated answer plus the evidence chunks it was conditioned on."""

    text: str
    query: str
    evidence: tuple[Chunk, ...] = ()
    model_id: str = ""


class Stage(str, Enum):
    """States of a pipeline run, in execution order."""

    INIT = "init"
    FETCH = "fetch"
    EXTRACT = "extract"
    CHUNK = "chunk"
    EMBED_INDEX = "embed_index"
    RETRIEVE = "retrieve"
    SUMMARIZE = "summarize"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StageEvent:
    """Emitted whenever a stage finishes (or the run fails)."""

    step: int
    stage: Stage
    elapsed: float
    message: str

    def format(self) -> str:
        return f"[{self.elapsed:.2f}s] Step {self.step}: {self.message}"


@dataclass(slots=True)
class PipelineRun:
    """Outcome of one end-to-end pass."""

    state: Stage = Stage.INIT
    events: list[StageEvent] = field(default_factory=list)
    answer: SummaryAnswer | None = None
    error: Exception | None = None
    failed_stage: Stage | None = None
    artifacts: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.state is Stage.DONE


__all__ = [
    "SourceDocument",
    "Chunk",
    "EmbeddedChunk",
    "RetrievalResult",
    "QueryResult",
    "SummaryAnswer",
    "Stage",
    "StageEvent",
    "PipelineRun",
]
