import asyncio
import unittest
from dataclasses import replace
from unittest import mock

from application.config import PipelineConfig
from application.services.provider_calls import ProviderCaller
from application.use_cases.run_pipeline import PipelineOrchestrator
from domain.entities import Stage
from domain.errors import (
    ConfigError,
    ContextTooLargeError,
    EmptyInputError,
    FetchError,
    PersistError,
    RateLimited,
    RunCancelledError,
    Unauthorized,
)
from fakes import NEWS_HTML, NO_WAIT_RETRY, FakeClock, MemoryArtifactStore, StubEmbedder, StubFetcher, StubSummarizer
from infrastructure.summarization.llm_summarizer import LLMSummarizer, LLMSummarizerConfig
from infrastructure.text_extraction.html_extractor import HtmlExtractor

BASE_CONFIG = PipelineConfig(
    source_url="https://news.example.com/section/100",
    query="Summarize the headlines neutrally and keep the links.",
    chunk_max_size=120,
    chunk_overlap=20,
    retrieval_k=2,
    retry=NO_WAIT_RETRY,
)


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    def make(self, config=BASE_CONFIG, *, fetcher=None, embedder=None, summarizer=None, store=None):
        self.fetcher = fetcher or StubFetcher(NEWS_HTML.encode("utf-8"))
        self.embedder = embedder or StubEmbedder()
        self.summarizer = summarizer or StubSummarizer()
        self.store = store or MemoryArtifactStore()
        return PipelineOrchestrator(
            config,
            fetcher=self.fetcher,
            extractor=HtmlExtractor(),
            embedder=self.embedder,
            summarizer=self.summarizer,
            artifact_store=self.store,
            caller=ProviderCaller(config.retry),
            started_at=0.0,
            clock=FakeClock(),
        )


class TestSuccessfulRun(PipelineTestCase):
    async def test_runs_every_stage_in_order(self) -> None:
        run = await self.make().run()

        self.assertEqual(run.state, Stage.DONE, run.error)
        stages = [event.stage for event in run.events]
        self.assertEqual(
            list(dict.fromkeys(stages)),
            [
                Stage.INIT,
                Stage.FETCH,
                Stage.EXTRACT,
                Stage.CHUNK,
                Stage.EMBED_INDEX,
                Stage.RETRIEVE,
                Stage.SUMMARIZE,
                Stage.PERSIST,
                Stage.DONE,
            ],
        )
        self.assertEqual([event.step for event in run.events], list(range(1, len(run.events) + 1)))
        elapsed = [event.elapsed for event in run.events]
        self.assertEqual(elapsed, sorted(elapsed))
        self.assertTrue(run.events[0].format().startswith("[1.00s] Step 1: "))

    async def test_answer_carries_its_evidence_and_is_persisted(self) -> None:
        run = await self.make().run()

        self.assertIsNotNone(run.answer)
        query, evidence = self.summarizer.calls[0]
        self.assertEqual(query, BASE_CONFIG.query)
        self.assertEqual(len(evidence), BASE_CONFIG.retrieval_k)
        self.assertEqual(list(run.answer.evidence), evidence)
        self.assertEqual(self.store.saved["response"], NEWS_HTML.encode("utf-8"))
        self.assertEqual(self.store.saved["record"], run.answer.text)
        self.assertIn('"chunk_id"', self.store.saved["evidence"])
        self.assertEqual(set(run.artifacts), {"response", "record", "evidence"})

    async def test_links_survive_extraction_into_chunks(self) -> None:
        run = await self.make(replace(BASE_CONFIG, chunk_max_size=2000, chunk_overlap=100, retrieval_k=10)).run()

        self.assertEqual(len(run.answer.evidence), 1)
        evidence_text = "\n".join(chunk.text for chunk in run.answer.evidence)
        self.assertIn("https://news.example.com/article/001", evidence_text)
        self.assertIn("https://news.example.com/article/003", evidence_text)


class TestFailedRuns(PipelineTestCase):
    async def test_empty_extraction_fails_before_indexing(self) -> None:
        fetcher = StubFetcher(b"<html><body><p>no list here</p></body></html>")
        run = await self.make(fetcher=fetcher).run()

        self.assertEqual(run.state, Stage.FAILED)
        self.assertIsInstance(run.error, EmptyInputError)
        self.assertEqual(run.failed_stage, Stage.CHUNK)
        self.assertEqual(self.embedder.calls, [])
        self.assertEqual(self.summarizer.calls, [])
        self.assertNotIn("record", self.store.saved)
        # The raw page was cached before the failure and may stay.
        self.assertIn("response", self.store.saved)

    async def test_rate_limited_embedding_recovers_after_two_retries(self) -> None:
        embedder = StubEmbedder(failures=[RateLimited("429"), RateLimited("429")])
        run = await self.make(embedder=embedder).run()

        self.assertEqual(run.state, Stage.DONE, run.error)
        index_calls, query_calls = embedder.calls[:-1], embedder.calls[-1:]
        self.assertEqual(len(index_calls), 3)
        self.assertEqual(index_calls[0], index_calls[2])
        self.assertEqual(query_calls, [[BASE_CONFIG.query]])

    async def test_unauthorized_embedding_is_fatal_without_retry(self) -> None:
        embedder = StubEmbedder(failures=[Unauthorized("bad key")])
        run = await self.make(embedder=embedder).run()

        self.assertEqual(run.state, Stage.FAILED)
        self.assertIsInstance(run.error, Unauthorized)
        self.assertEqual(run.failed_stage, Stage.EMBED_INDEX)
        self.assertEqual(len(embedder.calls), 1)
        self.assertEqual(self.summarizer.calls, [])

    async def test_fetch_not_found_is_not_retried(self) -> None:
        fetcher = StubFetcher(failures=[FetchError("404", status=404, retryable=False)])
        run = await self.make(fetcher=fetcher).run()

        self.assertIsInstance(run.error, FetchError)
        self.assertEqual(run.failed_stage, Stage.FETCH)
        self.assertEqual(len(fetcher.calls), 1)
        self.assertEqual(self.store.saved, {})

    async def test_transient_fetch_errors_are_retried(self) -> None:
        fetcher = StubFetcher(NEWS_HTML.encode("utf-8"), failures=[FetchError("502", status=502)])
        run = await self.make(fetcher=fetcher).run()

        self.assertEqual(run.state, Stage.DONE, run.error)
        self.assertEqual(len(fetcher.calls), 2)

    async def test_invalid_config_fails_in_init(self) -> None:
        run = await self.make(replace(BASE_CONFIG, chunk_overlap=BASE_CONFIG.chunk_max_size)).run()

        self.assertIsInstance(run.error, ConfigError)
        self.assertEqual(run.failed_stage, Stage.INIT)
        self.assertEqual(self.fetcher.calls, [])
        self.assertEqual(run.events[-1].stage, Stage.FAILED)

    async def test_oversized_context_fails_before_calling_the_model(self) -> None:
        session = mock.Mock()
        summarizer = LLMSummarizer(
            LLMSummarizerConfig(provider="ollama", model="llama3.1", max_context_chars=50),
            session=session,
        )
        run = await self.make(summarizer=summarizer).run()

        self.assertIsInstance(run.error, ContextTooLargeError)
        self.assertEqual(run.failed_stage, Stage.SUMMARIZE)
        session.post.assert_not_called()
        self.assertNotIn("record", self.store.saved)


class TestPersistFailures(PipelineTestCase):
    async def test_failed_evidence_write_leaves_no_answer_behind(self) -> None:
        store = MemoryArtifactStore(failing_kinds=["evidence"])
        run = await self.make(store=store).run()

        self.assertEqual(run.state, Stage.FAILED)
        self.assertIsInstance(run.error, PersistError)
        self.assertEqual(run.failed_stage, Stage.PERSIST)
        self.assertNotIn("record", store.saved)
        self.assertNotIn("record", run.artifacts)
        self.assertNotIn("evidence", run.artifacts)

    async def test_failed_answer_write_removes_the_stored_evidence(self) -> None:
        store = MemoryArtifactStore(failing_kinds=["record"])
        run = await self.make(store=store).run()

        self.assertIsInstance(run.error, PersistError)
        self.assertEqual(store.deleted, ["memory://evidence"])
        self.assertEqual(set(store.saved), {"response"})
        self.assertEqual(set(run.artifacts), {"response"})


class TestCancellation(PipelineTestCase):
    async def test_cancel_before_start_stops_at_first_boundary(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        run = await self.make().run(cancel)

        self.assertIsInstance(run.error, RunCancelledError)
        self.assertEqual(run.failed_stage, Stage.FETCH)
        self.assertEqual(self.fetcher.calls, [])

    async def test_cancel_during_summarize_persists_nothing(self) -> None:
        summarizer = StubSummarizer(delay=0.3)
        orchestrator = self.make(summarizer=summarizer)
        cancel = asyncio.Event()

        async def cancel_when_summarizing() -> None:
            await asyncio.to_thread(summarizer.started.wait, 5)
            cancel.set()

        canceller = asyncio.create_task(cancel_when_summarizing())
        run = await orchestrator.run(cancel)
        await canceller

        self.assertEqual(run.state, Stage.FAILED)
        self.assertIsInstance(run.error, RunCancelledError)
        self.assertEqual(run.failed_stage, Stage.SUMMARIZE)
        self.assertIsNone(run.answer)
        self.assertNotIn("record", self.store.saved)
        self.assertNotIn("evidence", self.store.saved)


if __name__ == "__main__":
    unittest.main()
