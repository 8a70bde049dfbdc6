"""Chunk splitter that cuts at the best natural boundary inside a trailing window."""
from __future__ import annotations

import hashlib
from typing import Any, Mapping

from domain.entities import Chunk, SourceDocument
from domain.errors import ConfigError
from domain.interfaces import ChunkSplitter

# Searched in priority order; the separator stays with the preceding chunk.
_BOUNDARY_TIERS: tuple[tuple[str, ...], ...] = (
    ("\n\n",),
    (". ", "! ", "? ", "。", "\n"),
    (" ",),
)


class BoundaryWindowSplitter(ChunkSplitter):
    """Split text into chunks of at most ``max_size`` characters.

    Each chunk is the longest run up to ``max_size`` characters, shortened to
    the last paragraph, sentence or word break found in the final
    ``boundary_window`` characters of that run (raw cut when there is none).
    The next chunk starts ``overlap`` characters before the previous end.
    """

    def __init__(self, max_size: int = 2000, overlap: int = 100, *, boundary_window: int | None = None) -> None:
        if max_size <= 0:
            raise ConfigError(f"chunk max size must be positive, got {max_size}")
        if overlap < 0 or overlap >= max_size:
            raise ConfigError(f"chunk overlap must be in [0, {max_size}), got {overlap}")
        window = boundary_window if boundary_window is not None else max(1, max_size // 4)
        if window <= 0:
            raise ConfigError(f"boundary window must be positive, got {window}")
        self.max_size = max_size
        self.overlap = overlap
        self.boundary_window = window

    def split(
        self,
        text: str,
        *,
        document_id: str = "",
        metadata: Mapping[str, Any] | None = None,
    ) -> list[Chunk]:
        # Whitespace-only text has nothing to embed, so it yields no chunks
        # and is exempt from offset reconstruction.
        if not text.strip():
            return []

        base_meta = dict(metadata or {})
        chunks: list[Chunk] = []
        start = 0
        while True:
            end = self._find_end(text, start)
            index = len(chunks)
            chunks.append(
                Chunk(
                    id=_chunk_id(document_id, index, start, end),
                    document_id=document_id,
                    text=text[start:end],
                    start=start,
                    end=end,
                    metadata={**base_meta, "chunk_index": index, "start": start, "end": end},
                )
            )
            if end >= len(text):
                break
            start = end - self.overlap
        return chunks

    def split_document(self, document: SourceDocument) -> list[Chunk]:
        return self.split(document.content, document_id=document.id, metadata=document.metadata)

    def _find_end(self, text: str, start: int) -> int:
        hard_end = min(start + self.max_size, len(text))
        if hard_end == len(text):
            return hard_end
        # Any cut above the floor keeps the next start strictly after this one.
        floor = max(start + self.overlap + 1, hard_end - self.boundary_window)
        for separators in _BOUNDARY_TIERS:
            best = -1
            for separator in separators:
                position = text.rfind(separator, floor, hard_end)
                if position != -1:
                    best = max(best, position + len(separator))
            if best != -1:
                return best
        return hard_end


def _chunk_id(document_id: str, index: int, start: int, end: int) -> str:
    raw = f"{document_id}:{index}:{start}:{end}".encode("utf-8")
    return hashlib.sha1(raw).hexdigest()[:16]


__all__ = ["BoundaryWindowSplitter"]
