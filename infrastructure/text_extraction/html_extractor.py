"""HTML extractor that collects the text of every element matching a CSS selector."""
from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from domain.entities import SourceDocument
from domain.errors import ConfigError
from domain.interfaces import TextExtractor

_SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:")


class HtmlExtractor(TextExtractor):
    """Extract list-item-like blocks and keep the links they point to.

    Each matching element becomes one block: its whitespace-normalised text
    followed by its resolved ``href`` targets, one per line. Blocks are joined
    with blank lines so the splitter can cut between them.
    """

    def __init__(self, parser: str = "html.parser", *, include_links: bool = True) -> None:
        self._parser = parser
        self._include_links = include_links

    def extract_blocks(self, source: bytes | str, selector: str, *, url: str = "") -> list[tuple[str, dict[str, Any]]]:
        if isinstance(source, bytes):
            raw = source.decode("utf-8", errors="ignore")
        else:
            raw = source
        soup = BeautifulSoup(raw, self._parser)
        try:
            elements = soup.select(selector)
        except SelectorSyntaxError as exc:
            raise ConfigError(f"invalid selector {selector!r}: {exc}") from exc

        blocks: list[tuple[str, dict[str, Any]]] = []
        for position, element in enumerate(elements):
            text = " ".join(element.get_text(" ", strip=True).split())
            if not text:
                continue
            links = self._links(element, url) if self._include_links else []
            body = "\n".join([text, *links])
            blocks.append((body, {"source": url, "selector": selector, "position": position, "links": links}))
        return blocks

    def extract(self, source: bytes | str, selector: str, *, url: str = "") -> SourceDocument:
        blocks = self.extract_blocks(source, selector, url=url)
        return SourceDocument(
            id=hashlib.sha1(url.encode("utf-8")).hexdigest()[:12] if url else "document",
            content="\n\n".join(text for text, _meta in blocks),
            metadata={"source": url, "selector": selector, "block_count": len(blocks)},
        )

    @staticmethod
    def _links(element: Any, base_url: str) -> list[str]:
        anchors = [element] if element.name == "a" else []
        anchors.extend(element.find_all("a", href=True))
        links: list[str] = []
        for anchor in anchors:
            href = (anchor.get("href") or "").strip()
            if not href or href.startswith(_SKIPPED_HREF_PREFIXES):
                continue
            resolved = urljoin(base_url, href) if base_url else href
            if resolved not in links:
                links.append(resolved)
        return links


__all__ = ["HtmlExtractor"]
