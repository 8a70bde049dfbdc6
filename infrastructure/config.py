"""Dependency wiring for the newsdigest pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Literal

from application.config import PipelineConfig
from domain.errors import ConfigError
from domain.interfaces import ArtifactStore, Embedder, Fetcher, Summarizer, TextExtractor
from infrastructure.embedding.hash_embedder import HashEmbedder
from infrastructure.embedding.openai_embedder import OpenAIEmbedder, OpenAIEmbedderConfig
from infrastructure.fetching.requests_fetcher import RequestsFetcher
from infrastructure.storage.file_artifact_store import FileArtifactStore
from infrastructure.summarization.llm_summarizer import LLMSummarizer, LLMSummarizerConfig
from infrastructure.text_extraction.html_extractor import HtmlExtractor


EmbedderName = Literal["openai", "sentence-transformers", "hash"]
SummarizerName = Literal["openai", "ollama"]


@dataclass(slots=True)
class Container:
    """Simple container bundling concrete infrastructure implementations."""

    fetcher: Fetcher
    extractor: TextExtractor
    embedder: Embedder
    summarizer: Summarizer
    artifact_store: ArtifactStore


@dataclass(slots=True)
class ContainerConfig:
    """Selects the embedding and chat providers and their models."""

    embedder: EmbedderName = "openai"
    embedding_model: str | None = None
    summarizer: SummarizerName = "openai"
    chat_model: str | None = None
    openai_api_key: str | None = None
    ollama_url: str = "http://localhost:11434"

    @classmethod
    def from_env(cls) -> ContainerConfig:
        return cls(
            embedder=os.getenv("NEWSDIGEST_EMBEDDER", "openai"),  # type: ignore[arg-type]
            embedding_model=os.getenv("NEWSDIGEST_EMBEDDING_MODEL") or None,
            summarizer=os.getenv("NEWSDIGEST_SUMMARIZER", "openai"),  # type: ignore[arg-type]
            chat_model=os.getenv("NEWSDIGEST_CHAT_MODEL") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
        )


def _openai_embedder(cfg: ContainerConfig, pipeline: PipelineConfig) -> Embedder:
    defaults = OpenAIEmbedderConfig()
    return OpenAIEmbedder(
        OpenAIEmbedderConfig(
            model=cfg.embedding_model or defaults.model,
            api_key=cfg.openai_api_key,
            request_timeout=pipeline.embed_timeout,
        )
    )


def _sentence_transformers_embedder(cfg: ContainerConfig, pipeline: PipelineConfig) -> Embedder:
    # Imported lazily: sentence-transformers is an optional extra.
    from infrastructure.embedding.sentence_transformers_embedder import (  # noqa: PLC0415
        SentenceTransformersConfig,
        SentenceTransformersEmbedder,
    )

    defaults = SentenceTransformersConfig()
    return SentenceTransformersEmbedder(
        SentenceTransformersConfig(
            model_name=cfg.embedding_model or defaults.model_name,
            batch_size=min(defaults.batch_size, pipeline.embedding_batch_size),
        )
    )


def _hash_embedder(cfg: ContainerConfig, pipeline: PipelineConfig) -> Embedder:
    return HashEmbedder()


_EMBEDDER_FACTORIES: dict[EmbedderName, Callable[[ContainerConfig, PipelineConfig], Embedder]] = {
    "openai": _openai_embedder,
    "sentence-transformers": _sentence_transformers_embedder,
    "hash": _hash_embedder,
}

_DEFAULT_CHAT_MODELS: dict[SummarizerName, str] = {
    "openai": "gpt-4o-mini",
    "ollama": "llama3.1",
}


def build_default_container(
    config: ContainerConfig | None = None,
    pipeline: PipelineConfig | None = None,
) -> Container:
    """Instantiate the default infrastructure stack."""

    cfg = config or ContainerConfig()
    run_cfg = pipeline or PipelineConfig()
    try:
        embedder = _EMBEDDER_FACTORIES[cfg.embedder](cfg, run_cfg)
    except KeyError as exc:
        raise ConfigError(f"Unknown embedder '{cfg.embedder}'") from exc
    if cfg.summarizer not in _DEFAULT_CHAT_MODELS:
        raise ConfigError(f"Unknown summarizer '{cfg.summarizer}'")

    summarizer = LLMSummarizer(
        LLMSummarizerConfig(
            provider=cfg.summarizer,
            model=cfg.chat_model or _DEFAULT_CHAT_MODELS[cfg.summarizer],
            max_context_chars=run_cfg.max_context_chars,
            request_timeout=run_cfg.summarize_timeout,
            ollama_url=cfg.ollama_url,
            openai_api_key=cfg.openai_api_key,
        )
    )
    artifact_store = FileArtifactStore(
        {"response": run_cfg.cache_dir, "record": run_cfg.record_dir, "evidence": run_cfg.record_dir},
        default_dir=run_cfg.record_dir,
        tz=run_cfg.timezone,
    )

    return Container(
        fetcher=RequestsFetcher(timeout=run_cfg.fetch_timeout),
        extractor=HtmlExtractor(),
        embedder=embedder,
        summarizer=summarizer,
        artifact_store=artifact_store,
    )


__all__ = ["Container", "ContainerConfig", "build_default_container"]
