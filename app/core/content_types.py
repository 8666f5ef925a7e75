"""Content types shared by the extraction and conversion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class OutputType(str, Enum):
    """Marketing formats an article can be converted into."""

    NEWSLETTER = "newsletter"
    SOCIAL = "social"
    EMAIL = "email"


class SocialPlatform(str, Enum):
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"


class Tone(str, Enum):
    CONVERSATIONAL = "conversational"
    PROFESSIONAL = "professional"
    PLAYFUL = "playful"


class SourceType(str, Enum):
    URL = "url"
    TEXT = "text"


DEFAULT_PLATFORMS: tuple[SocialPlatform, ...] = (
    SocialPlatform.TWITTER,
    SocialPlatform.LINKEDIN,
    SocialPlatform.INSTAGRAM,
)

DEFAULT_TONE = Tone.CONVERSATIONAL


@dataclass(frozen=True)
class ArticleMetadata:
    """Metadata of the source article.

    canonical_url is always absolute. word_count is an approximation
    (extracted character length / 5), not a true word count.
    """

    canonical_url: str
    title: str | None = None
    author: str | None = None
    word_count: int | None = None
    excerpt: str | None = None

    def with_canonical_url(self, canonical_url: str) -> ArticleMetadata:
        """Copy with a different canonical URL (e.g. the tracked one)."""
        return replace(self, canonical_url=canonical_url)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization, omitting absent fields."""
        data: dict[str, Any] = {
            "title": self.title,
            "author": self.author,
            "canonicalUrl": self.canonical_url,
            "wordCount": self.word_count,
            "excerpt": self.excerpt,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class ExtractedArticle:
    """Result of fetching and extracting an article from a URL."""

    content: str
    metadata: ArticleMetadata
    html: str


@dataclass(frozen=True)
class ConversionResult:
    """Generated outputs for one conversion request."""

    outputs: dict[OutputType, str]
    metadata: ArticleMetadata
    raw_content: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "outputs": {kind.value: html for kind, html in self.outputs.items()},
            "metadata": self.metadata.to_dict(),
            "rawContent": self.raw_content,
        }
