"""Run configuration for a single newsdigest pass."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from domain.errors import ConfigError

DEFAULT_SOURCE_URL = "https://news.naver.com/section/100"
DEFAULT_SELECTOR = "li"
DEFAULT_QUERY = (
    "다음 Html 기사 목록을 바탕으로 중립적으로 핵심 내용을 요약해줘. "
    "개인 의견이나 해석은 제외하고 원문 링크만 유지해줘."
)


@dataclass(slots=True)
class RetryPolicy:
    """Exponential backoff for retryable provider and fetch errors."""

    max_attempts: int = 4
    initial_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError(f"retry max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ConfigError("retry delays must not be negative")


@dataclass(slots=True)
class PipelineConfig:
    """Tunables of one run.

    Attributes:
        source_url: Page to fetch.
        extraction_selector: CSS selector of the content blocks (list items).
        query: The question answered from the retrieved chunks.
        chunk_max_size: Maximum chunk length in characters.
        chunk_overlap: Characters shared with the preceding chunk.
        retrieval_k: Number of chunks handed to the summarizer.
        embedding_batch_size: Upper bound of texts per embedding call.
        embedding_max_concurrency: Embedding batches in flight at once.
        max_context_chars: Largest evidence context the summarizer accepts.
        fetch_timeout: Seconds allowed per fetch attempt.
        embed_timeout: Seconds allowed per embedding call.
        summarize_timeout: Seconds allowed per chat call.
        retry: Backoff policy for retryable errors.
        cache_dir: Where the raw page is cached.
        record_dir: Where the answer and its evidence are stored.
        timezone: Timezone of the artifact timestamps.
    """

    source_url: str = DEFAULT_SOURCE_URL
    extraction_selector: str = DEFAULT_SELECTOR
    query: str = DEFAULT_QUERY
    chunk_max_size: int = 2000
    chunk_overlap: int = 100
    retrieval_k: int = 4
    embedding_batch_size: int = 512
    embedding_max_concurrency: int = 4
    max_context_chars: int = 12000
    fetch_timeout: float = 30.0
    embed_timeout: float = 60.0
    summarize_timeout: float = 120.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    cache_dir: str = "cache"
    record_dir: str = "record"
    timezone: str = "Asia/Seoul"

    def validate(self) -> None:
        if not self.source_url:
            raise ConfigError("source_url must not be empty")
        if not self.extraction_selector:
            raise ConfigError("extraction_selector must not be empty")
        if not self.query.strip():
            raise ConfigError("query must not be empty")
        if self.chunk_max_size <= 0:
            raise ConfigError(f"chunk_max_size must be positive, got {self.chunk_max_size}")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_max_size:
            raise ConfigError(
                f"chunk_overlap must be in [0, {self.chunk_max_size}), got {self.chunk_overlap}"
            )
        if self.retrieval_k <= 0:
            raise ConfigError(f"retrieval_k must be positive, got {self.retrieval_k}")
        if self.embedding_batch_size <= 0:
            raise ConfigError(f"embedding_batch_size must be positive, got {self.embedding_batch_size}")
        if self.embedding_max_concurrency <= 0:
            raise ConfigError(
                f"embedding_max_concurrency must be positive, got {self.embedding_max_concurrency}"
            )
        if self.max_context_chars <= 0:
            raise ConfigError(f"max_context_chars must be positive, got {self.max_context_chars}")
        for name in ("fetch_timeout", "embed_timeout", "summarize_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        self.retry.validate()

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Create a config from ``NEWSDIGEST_*`` environment variables."""
        defaults = cls()
        return cls(
            source_url=os.getenv("NEWSDIGEST_SOURCE_URL", defaults.source_url),
            extraction_selector=os.getenv("NEWSDIGEST_SELECTOR", defaults.extraction_selector),
            query=os.getenv("NEWSDIGEST_QUERY", defaults.query),
            chunk_max_size=_env_int("NEWSDIGEST_CHUNK_SIZE", defaults.chunk_max_size),
            chunk_overlap=_env_int("NEWSDIGEST_CHUNK_OVERLAP", defaults.chunk_overlap),
            retrieval_k=_env_int("NEWSDIGEST_TOP_K", defaults.retrieval_k),
            embedding_batch_size=_env_int("NEWSDIGEST_EMBED_BATCH_SIZE", defaults.embedding_batch_size),
            embedding_max_concurrency=_env_int(
                "NEWSDIGEST_EMBED_CONCURRENCY", defaults.embedding_max_concurrency
            ),
            max_context_chars=_env_int("NEWSDIGEST_MAX_CONTEXT_CHARS", defaults.max_context_chars),
            fetch_timeout=_env_float("NEWSDIGEST_FETCH_TIMEOUT", defaults.fetch_timeout),
            embed_timeout=_env_float("NEWSDIGEST_EMBED_TIMEOUT", defaults.embed_timeout),
            summarize_timeout=_env_float("NEWSDIGEST_SUMMARIZE_TIMEOUT", defaults.summarize_timeout),
            retry=RetryPolicy(
                max_attempts=_env_int("NEWSDIGEST_RETRY_ATTEMPTS", defaults.retry.max_attempts),
                initial_delay=_env_float("NEWSDIGEST_RETRY_INITIAL_DELAY", defaults.retry.initial_delay),
                max_delay=_env_float("NEWSDIGEST_RETRY_MAX_DELAY", defaults.retry.max_delay),
            ),
            cache_dir=os.getenv("NEWSDIGEST_CACHE_DIR", defaults.cache_dir),
            record_dir=os.getenv("NEWSDIGEST_RECORD_DIR", defaults.record_dir),
            timezone=os.getenv("NEWSDIGEST_TIMEZONE", defaults.timezone),
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


__all__ = ["PipelineConfig", "RetryPolicy", "DEFAULT_QUERY", "DEFAULT_SELECTOR", "DEFAULT_SOURCE_URL"]
