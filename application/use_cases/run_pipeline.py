"""Use case that runs one fetch → chunk → index → retrieve → summarize pass."""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from application.config import PipelineConfig
from application.services.provider_calls import ProviderCaller
from application.use_cases.embed_index import build_index
from application.use_cases.retrieve import Retriever
from domain.entities import PipelineRun, QueryResult, SourceDocument, Stage, StageEvent, SummaryAnswer
from domain.errors import EmptyInputError, NewsDigestError, PersistError, RunCancelledError
from domain.interfaces import ArtifactStore, Embedder, Fetcher, Summarizer, TextExtractor
from infrastructure.splitting.boundary_window_splitter import BoundaryWindowSplitter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineOrchestrator:
    """Sequences the stages of a run and records a ``StageEvent`` per stage.

    Stages never branch or retry; retries live in ``ProviderCaller``. Any
    error that reaches this class moves the run to ``Stage.FAILED``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        fetcher: Fetcher,
        extractor: TextExtractor,
        embedder: Embedder,
        summarizer: Summarizer,
        artifact_store: ArtifactStore,
        caller: ProviderCaller | None = None,
        started_at: float | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config
        self._fetcher = fetcher
        self._extractor = extractor
        self._embedder = embedder
        self._summarizer = summarizer
        self._artifact_store = artifact_store
        self._caller = caller or ProviderCaller(config.retry)
        self._clock = clock
        self._started_at = started_at if started_at is not None else clock()

    async def run(self, cancel_event: asyncio.Event | None = None) -> PipelineRun:
        cancel = cancel_event or asyncio.Event()
        run = PipelineRun()
        config = self.config
        try:
            self.config.validate()
            splitter = BoundaryWindowSplitter(config.chunk_max_size, config.chunk_overlap)
            self._emit(
                run,
                Stage.INIT,
                f"configuration ready (source={config.source_url}, selector={config.extraction_selector!r}, "
                f"chunk={config.chunk_max_size}/{config.chunk_overlap}, k={config.retrieval_k}, "
                f"embedder={self._embedder.model_id}, summarizer={self._summarizer.model_id})",
            )

            run.state = Stage.FETCH
            raw = await self._guarded(cancel, self._fetch(run))

            run.state = Stage.EXTRACT
            document = await self._guarded(cancel, self._extract(raw))
            self._emit(
                run,
                Stage.EXTRACT,
                f"extracted {document.metadata.get('block_count', 0)} blocks ({len(document.content)} chars)",
            )

            run.state = Stage.CHUNK
            chunks = splitter.split_document(document)
            if not chunks:
                raise EmptyInputError(
                    f"selector {config.extraction_selector!r} produced no text at {config.source_url}"
                )
            self._emit(run, Stage.CHUNK, f"split into {len(chunks)} chunks")
            self._check_cancel(cancel)

            run.state = Stage.EMBED_INDEX
            index = await self._guarded(
                cancel,
                build_index(
                    chunks,
                    embedder=self._embedder,
                    caller=self._caller,
                    batch_size=config.embedding_batch_size,
                    max_concurrency=config.embedding_max_concurrency,
                    timeout=config.embed_timeout,
                ),
            )
            self._emit(run, Stage.EMBED_INDEX, f"indexed {len(index)} chunks (dimension {index.dimension})")

            run.state = Stage.RETRIEVE
            retriever = Retriever(
                embedder=self._embedder,
                index=index,
                caller=self._caller,
                timeout=config.embed_timeout,
            )
            retrieved = await self._guarded(cancel, retriever.retrieve(config.query, config.retrieval_k))
            top = f"{retrieved.scores[0]:.3f}" if len(retrieved) else "n/a"
            self._emit(run, Stage.RETRIEVE, f"retrieved {len(retrieved)} chunks (top score {top})")

            run.state = Stage.SUMMARIZE
            answer = await self._guarded(
                cancel,
                self._caller.call(
                    self._summarizer.summarize,
                    config.query,
                    retrieved.chunks,
                    timeout=config.summarize_timeout,
                    operation="summarize",
                ),
            )
            run.answer = answer
            self._emit(run, Stage.SUMMARIZE, f"answer:\n {answer.text}")

            run.state = Stage.PERSIST
            self._check_cancel(cancel)
            # Once started, persisting runs to completion or rolls back.
            await asyncio.shield(self._persist(run, answer, retrieved))

            run.state = Stage.DONE
            self._emit(run, Stage.DONE, "run completed")
        except NewsDigestError as exc:
            self._fail(run, exc)
        except Exception as exc:
            logger.exception("Unexpected error in stage %s", run.state.value)
            self._fail(run, exc)
        return run

    async def _fetch(self, run: PipelineRun) -> bytes:
        raw = await self._caller.call(
            self._fetcher.fetch,
            self.config.source_url,
            timeout=self.config.fetch_timeout,
            operation="fetch",
        )
        self._emit(run, Stage.FETCH, f"fetched {len(raw)} bytes from {self.config.source_url}")
        location = await asyncio.to_thread(self._artifact_store.save, raw, "response")
        run.artifacts["response"] = location
        self._emit(run, Stage.FETCH, f"raw response cached at {location}")
        return raw

    async def _extract(self, raw: bytes) -> SourceDocument:
        return await asyncio.to_thread(
            self._extractor.extract,
            raw,
            self.config.extraction_selector,
            url=self.config.source_url,
        )

    async def _persist(self, run: PipelineRun, answer: SummaryAnswer, retrieved: QueryResult) -> None:
        """Store the evidence, then the answer; a stored answer implies both."""
        evidence = json.dumps(_evidence_payload(answer, retrieved), ensure_ascii=False, indent=2)
        evidence_location = await asyncio.to_thread(self._artifact_store.save, evidence, "evidence")
        try:
            record = await asyncio.to_thread(self._artifact_store.save, answer.text, "record")
        except Exception:
            try:
                await asyncio.to_thread(self._artifact_store.delete, evidence_location)
            except PersistError as cleanup_exc:
                logger.warning("Could not remove orphaned evidence %s: %s", evidence_location, cleanup_exc)
            raise
        run.artifacts["evidence"] = evidence_location
        run.artifacts["record"] = record
        self._emit(run, Stage.PERSIST, f"answer stored at {record}")

    async def _guarded(self, cancel: asyncio.Event, stage: Awaitable[T]) -> T:
        """Await ``stage`` unless ``cancel`` fires first, then cancel it."""
        if cancel.is_set():
            if asyncio.iscoroutine(stage):
                stage.close()
            raise RunCancelledError("run cancelled before the stage started")
        task = asyncio.ensure_future(stage)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RunCancelledError("run cancelled while the stage was in flight")

    @staticmethod
    def _check_cancel(cancel: asyncio.Event) -> None:
        if cancel.is_set():
            raise RunCancelledError("run cancelled at a stage boundary")

    def _emit(self, run: PipelineRun, stage: Stage, message: str) -> StageEvent:
        event = StageEvent(
            step=len(run.events) + 1,
            stage=stage,
            elapsed=self._clock() - self._started_at,
            message=message,
        )
        run.events.append(event)
        logger.info(event.format())
        return event

    def _fail(self, run: PipelineRun, exc: Exception) -> None:
        run.failed_stage = run.state
        run.error = exc
        kind = getattr(exc, "kind", type(exc).__name__)
        event = StageEvent(
            step=len(run.events) + 1,
            stage=Stage.FAILED,
            elapsed=self._clock() - self._started_at,
            message=f"{run.failed_stage.value} failed: {kind}: {exc}",
        )
        run.events.append(event)
        run.state = Stage.FAILED
        logger.error(event.format())


def _evidence_payload(answer: SummaryAnswer, retrieved: QueryResult) -> dict[str, Any]:
    return {
        "query": answer.query,
        "model": answer.model_id,
        "evidence": [
            {
                "chunk_id": result.chunk.id,
                "document_id": result.chunk.document_id,
                "start": result.chunk.start,
                "end": result.chunk.end,
                "score": result.score,
                "source": result.chunk.metadata.get("source"),
                "text": result.chunk.text,
            }
            for result in retrieved
        ],
    }


__all__ = ["PipelineOrchestrator"]
