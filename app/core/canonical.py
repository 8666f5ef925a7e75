"""Canonical URL resolution for fetched pages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup


class CanonicalSource(str, Enum):
    """Which part of the document supplied the canonical URL."""

    LINK = "link"
    OG = "og"
    TWITTER = "twitter"
    INPUT = "input"


@dataclass(frozen=True)
class CanonicalUrl:
    href: str
    source: CanonicalSource


# (source, CSS selector, attribute holding the URL), in priority order
CANONICAL_CANDIDATES: tuple[tuple[CanonicalSource, str, str], ...] = (
    (CanonicalSource.LINK, "link[rel~='canonical']", "href"),
    (CanonicalSource.OG, "meta[property='og:url']", "content"),
    (CanonicalSource.TWITTER, "meta[name='twitter:url']", "content"),
)


def _resolve_against(fetch_url: str, href: str) -> str:
    """Resolve href relative to fetch_url, falling back to fetch_url."""
    try:
        resolved = urljoin(fetch_url, href.strip())
        parsed = urlparse(resolved)
    except ValueError:
        return fetch_url
    if not parsed.scheme or not parsed.netloc:
        return fetch_url
    return resolved


def resolve_canonical(document: BeautifulSoup, fetch_url: str) -> CanonicalUrl:
    """Pick the authoritative URL of a parsed page.

    Checks <link rel="canonical">, then og:url, then twitter:url; the first
    non-empty candidate wins. Falls back to the fetch URL itself.
    """
    for source, selector, attribute in CANONICAL_CANDIDATES:
        element = document.select_one(selector)
        if element is None:
            continue
        href = element.get(attribute)
        if isinstance(href, str) and href.strip():
            return CanonicalUrl(href=_resolve_against(fetch_url, href), source=source)

    return CanonicalUrl(href=fetch_url, source=CanonicalSource.INPUT)
