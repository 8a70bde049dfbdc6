"""LLM-powered summarizer that answers the query from retrieved chunks."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Sequence

import requests

from domain.entities import Chunk, SummaryAnswer
from domain.errors import ConfigError, ContextTooLargeError, ProviderError, Unauthorized
from domain.interfaces import Summarizer
from infrastructure.http_client import post_json

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You summarize news listings. Use only the provided context. "
    "Write a neutral, fact-preserving summary of the key points: no personal opinions, "
    "no interpretation, no speculation. Keep the original article links that appear in "
    "the context next to the items they belong to. If the context does not contain the "
    "answer, say that you don't know."
)


@dataclass(slots=True)
class LLMSummarizerConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    max_context_chars: int = 12000
    temperature: float = 0.0
    request_timeout: float = 120.0
    ollama_url: str = "http://localhost:11434"
    openai_api_key: str | None = None
    openai_url: str = "https://api.openai.com/v1/chat/completions"


class LLMSummarizer(Summarizer):
    """Summarize evidence with OpenAI chat completions or a local Ollama model."""

    def __init__(self, config: LLMSummarizerConfig | None = None, *, session: requests.Session | None = None) -> None:
        self._config = config or LLMSummarizerConfig()
        if self._config.provider not in ("openai", "ollama"):
            raise ConfigError(f"Unknown summarizer provider '{self._config.provider}'")
        self._session = session or requests.Session()

    @property
    def model_id(self) -> str:
        return f"{self._config.provider}:{self._config.model}"

    def summarize(self, query: str, evidence: Sequence[Chunk]) -> SummaryAnswer:
        context = build_context(evidence, self._config.max_context_chars)
        prompt = build_prompt(query, context)
        if self._config.provider == "openai":
            text = self._call_openai(prompt)
        else:
            text = self._call_ollama(prompt)
        return SummaryAnswer(text=text.strip(), query=query, evidence=tuple(evidence), model_id=self.model_id)

    def _call_ollama(self, prompt: str) -> str:
        payload = post_json(
            self._session,
            f"{self._config.ollama_url}/api/generate",
            provider="ollama",
            payload={
                "model": self._config.model,
                "system": SYSTEM_PROMPT,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": self._config.temperature},
            },
            timeout=self._config.request_timeout,
        )
        if "response" not in payload:
            raise ProviderError(f"Unexpected Ollama response: {list(payload)}")
        return payload["response"]

    def _call_openai(self, prompt: str) -> str:
        api_key = self._config.openai_api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise Unauthorized("Missing OpenAI API key.")
        payload = post_json(
            self._session,
            self._config.openai_url,
            provider="openai-chat",
            headers={"Authorization": f"Bearer {api_key}"},
            payload={
                "model": self._config.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": self._config.temperature,
            },
            timeout=self._config.request_timeout,
        )
        try:
            return payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Unexpected chat completion response: {list(payload)}") from exc


def build_context(evidence: Sequence[Chunk], max_chars: int) -> str:
    """Join chunks in retrieval order; refuse contexts over ``max_chars``."""
    context = "\n\n".join(chunk.text.strip() for chunk in evidence)
    if len(context) > max_chars:
        raise ContextTooLargeError(
            f"{len(evidence)} chunks need {len(context)} chars of context, limit is {max_chars}; "
            "lower k or use smaller chunks"
        )
    logger.debug("Summarizer context: %d chunks, %d chars", len(evidence), len(context))
    return context


def build_prompt(query: str, context: str) -> str:
    return f"Context:\n{context}\n\nQuestion: {query}\n\nAnswer:"


__all__ = ["LLMSummarizer", "LLMSummarizerConfig", "SYSTEM_PROMPT", "build_context", "build_prompt"]
