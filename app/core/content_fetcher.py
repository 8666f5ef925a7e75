"""Article extractor: fetches a blog post and turns it into readable text.

Uses httpx for the fetch, trafilatura for main-content and metadata
extraction, and BeautifulSoup (lxml) for canonical URL resolution and the
visible-text fallback.
"""

from __future__ import annotations

import asyncio
import logging
import re

import httpx
import trafilatura
from bs4 import BeautifulSoup
from trafilatura.settings import use_config

from app.core.canonical import resolve_canonical
from app.core.content_types import ArticleMetadata, ExtractedArticle
from app.core.errors import ExtractionError, FetchError, FetchErrorType

logger = logging.getLogger(__name__)

USER_AGENT = "Blog2BuzzBot/1.0 (+https://blog2buzz.app; contact@blog2buzz.app)"
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

# Average characters per word used for the approximate word count
AVERAGE_WORD_LENGTH = 5

# HTTP timeout
FETCH_TIMEOUT = 30.0

# Short posts are still articles
MIN_CONTENT_LENGTH = 25

_WHITESPACE = re.compile(r"\s+")
HIDDEN_TAGS = ("script", "style", "noscript", "template")


def _extraction_config():
    config = use_config()
    config.set("DEFAULT", "EXTRACTION_TIMEOUT", "0")
    config.set("DEFAULT", "MIN_EXTRACTED_SIZE", str(MIN_CONTENT_LENGTH))
    config.set("DEFAULT", "MIN_OUTPUT_SIZE", str(MIN_CONTENT_LENGTH))
    return config


EXTRACTION_CONFIG = _extraction_config()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def approximate_word_count(length: int) -> int | None:
    """Approximate word count from a character length (length / 5)."""
    if length <= 0:
        return None
    return round(length / AVERAGE_WORD_LENGTH)


def visible_text(html: str) -> str:
    """Whole-page visible text with whitespace collapsed."""
    soup = BeautifulSoup(html, "lxml")
    for element in soup.find_all(HIDDEN_TAGS):
        element.decompose()
    root = soup.body or soup
    return collapse_whitespace(root.get_text(" "))


class ArticleExtractor:
    """Fetches a URL and extracts article text and metadata.

    One outbound request per call, no retries: a failed fetch or failed
    extraction surfaces immediately.
    """

    def __init__(self, timeout: float = FETCH_TIMEOUT) -> None:
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": ACCEPT,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_html(self, url: str) -> str:
        """GET the page and return its body.

        Raises:
            FetchError: On timeout, connection failure or non-2xx status.
        """
        client = await self._get_client()
        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Unable to fetch content. Request timed out after {self._timeout:g}s.",
                error_type=FetchErrorType.TIMEOUT,
            ) from e
        except httpx.TransportError as e:
            raise FetchError(
                f"Unable to fetch content. Connection error: {e}",
                error_type=FetchErrorType.CONNECTION_ERROR,
            ) from e

        if not response.is_success:
            error_type = (
                FetchErrorType.HTTP_5XX if response.status_code >= 500 else FetchErrorType.HTTP_4XX
            )
            raise FetchError(
                f"Unable to fetch content. Received status {response.status_code} "
                f"({response.reason_phrase}).",
                error_type=error_type,
                http_status=response.status_code,
            )

        return response.text

    async def extract(self, url: str) -> ExtractedArticle:
        """Fetch and extract an article.

        Args:
            url: The blog post URL.

        Returns:
            ExtractedArticle with cleaned text, metadata and the raw HTML.

        Raises:
            FetchError: If the page could not be fetched.
            ExtractionError: If no readable text could be derived.
        """
        html = await self.fetch_html(url)

        # trafilatura is CPU-bound, keep it off the event loop
        return await asyncio.get_running_loop().run_in_executor(
            None, lambda: build_article(html, url)
        )


def build_article(html: str, url: str) -> ExtractedArticle:
    """Turn fetched HTML into an ExtractedArticle."""
    fulltext = trafilatura.extract(
        html,
        url=url,
        config=EXTRACTION_CONFIG,
        include_comments=False,
        include_tables=True,
        favor_recall=True,
    )
    fulltext = (fulltext or "").strip()

    document = BeautifulSoup(html, "lxml")
    content = fulltext or visible_text(html)
    if not content:
        raise ExtractionError("We couldn't extract readable content from this URL.")

    canonical = resolve_canonical(document, url)
    meta = trafilatura.extract_metadata(html, default_url=url)

    page_title = None
    if document.title is not None:
        page_title = collapse_whitespace(document.title.get_text(" ")) or None

    excerpt = meta.description if meta else None
    if not excerpt and fulltext:
        excerpt = fulltext.split("\n", 1)[0]

    metadata = ArticleMetadata(
        canonical_url=canonical.href,
        title=(meta.title if meta else None) or page_title,
        author=meta.author if meta else None,
        word_count=approximate_word_count(len(fulltext)),
        excerpt=excerpt or None,
    )

    logger.info(
        f"Extracted {len(content)} chars from {url} "
        f"(canonical via {canonical.source.value}: {canonical.href})"
    )
    return ExtractedArticle(content=content, metadata=metadata, html=html)


# Module-level instance for convenience
_extractor: ArticleExtractor | None = None


def get_extractor(timeout: float = FETCH_TIMEOUT) -> ArticleExtractor:
    """Get or create the module-level ArticleExtractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = ArticleExtractor(timeout=timeout)
    return _extractor
