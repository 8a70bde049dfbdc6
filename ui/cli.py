"""Fetch a news listing, index it and print a neutral summary of it."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from dataclasses import replace
from typing import Sequence

from dotenv import load_dotenv

from application.config import PipelineConfig
from application.services.provider_calls import ProviderCaller
from application.use_cases.run_pipeline import PipelineOrchestrator
from domain.entities import PipelineRun
from domain.errors import ConfigError, NewsDigestError, RunCancelledError
from infrastructure.config import ContainerConfig, build_default_container
from ui.logging_utils import setup_logging

PROCESS_STARTED_AT = time.perf_counter()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="newsdigest", description=__doc__)
    parser.add_argument("--url", dest="source_url", help="Page to fetch (NEWSDIGEST_SOURCE_URL)")
    parser.add_argument("--selector", dest="extraction_selector", help="CSS selector of the content blocks")
    parser.add_argument("--query", help="Question answered from the retrieved chunks")
    parser.add_argument("--chunk-size", dest="chunk_max_size", type=int, help="Maximum chunk length in characters")
    parser.add_argument("--chunk-overlap", type=int, help="Characters shared by neighbouring chunks")
    parser.add_argument("-k", "--top-k", dest="retrieval_k", type=int, help="Chunks handed to the summarizer")
    parser.add_argument("--embed-batch-size", dest="embedding_batch_size", type=int)
    parser.add_argument("--embed-concurrency", dest="embedding_max_concurrency", type=int)
    parser.add_argument("--cache-dir", help="Directory of the cached raw page")
    parser.add_argument("--record-dir", help="Directory of the stored answers")
    parser.add_argument(
        "--embedder",
        choices=("openai", "sentence-transformers", "hash"),
        help="Embedding provider (NEWSDIGEST_EMBEDDER)",
    )
    parser.add_argument("--embedding-model", help="Embedding model name")
    parser.add_argument("--summarizer", choices=("openai", "ollama"), help="Chat provider (NEWSDIGEST_SUMMARIZER)")
    parser.add_argument("--chat-model", help="Chat model name")
    parser.add_argument("--log-level", help="Logging level (NEWSDIGEST_LOG_LEVEL)")
    return parser.parse_args(argv)


def build_configs(args: argparse.Namespace) -> tuple[PipelineConfig, ContainerConfig]:
    """Environment first, command-line flags on top."""
    pipeline = PipelineConfig.from_env()
    overrides = {
        name: getattr(args, name)
        for name in (
            "source_url",
            "extraction_selector",
            "query",
            "chunk_max_size",
            "chunk_overlap",
            "retrieval_k",
            "embedding_batch_size",
            "embedding_max_concurrency",
            "cache_dir",
            "record_dir",
        )
        if getattr(args, name) is not None
    }
    pipeline = replace(pipeline, **overrides)

    container = ContainerConfig.from_env()
    for name in ("embedder", "embedding_model", "summarizer", "chat_model"):
        value = getattr(args, name)
        if value is not None:
            setattr(container, name, value)
    return pipeline, container


async def run_once(pipeline: PipelineConfig, container_config: ContainerConfig) -> PipelineRun:
    container = build_default_container(container_config, pipeline)
    orchestrator = PipelineOrchestrator(
        pipeline,
        fetcher=container.fetcher,
        extractor=container.extractor,
        embedder=container.embedder,
        summarizer=container.summarizer,
        artifact_store=container.artifact_store,
        caller=ProviderCaller(pipeline.retry),
        started_at=PROCESS_STARTED_AT,
    )
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, cancel.set)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support.
            pass
    try:
        return await orchestrator.run(cancel)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def exit_code_for(run: PipelineRun) -> int:
    if run.succeeded:
        return EXIT_OK
    if isinstance(run.error, ConfigError):
        return EXIT_CONFIG
    if isinstance(run.error, RunCancelledError):
        return EXIT_CANCELLED
    return EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        pipeline, container_config = build_configs(args)
        run = asyncio.run(run_once(pipeline, container_config))
    except NewsDigestError as exc:
        print(f"error: {exc.kind}: {exc}", file=sys.stderr)
        return EXIT_CONFIG if isinstance(exc, ConfigError) else EXIT_FAILED

    if run.succeeded and run.answer is not None:
        print(run.answer.text)
        return EXIT_OK
    kind = getattr(run.error, "kind", type(run.error).__name__)
    print(f"error: {kind}: {run.error}", file=sys.stderr)
    return exit_code_for(run)


if __name__ == "__main__":
    sys.exit(main())
