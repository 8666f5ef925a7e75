"""Conversion orchestrator.

Turns a validated request into generated outputs:

    content + metadata (extractor or pasted text)
      -> per output type: track link -> build prompt -> generate -> sanitize
      -> ConversionResult
      -> best-effort persistence

Output types are processed sequentially, in request order, so a request
never has more than one generation call in flight.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from app.core.content_fetcher import ArticleExtractor, get_extractor
from app.core.content_types import (
    DEFAULT_PLATFORMS,
    DEFAULT_TONE,
    ArticleMetadata,
    ConversionResult,
    OutputType,
    SocialPlatform,
    SourceType,
    Tone,
)
from app.core.errors import ModelError, ValidationError
from app.core.link_tracker import build_tracked_url
from app.core.llm_providers import LLMProvider, get_chat_provider
from app.core.prompts import BACKLINK_TEXT, build_prompt, get_default_prompt
from app.core.settings import Settings
from app.core.storage import ConversionRecord, ConversionRecorder, NullRecorder, get_recorder

logger = logging.getLogger(__name__)

FALLBACK_OUTPUT = "<p>We weren't able to generate this output. Please try again.</p>"

MISSING_BACKLINK_MESSAGE = (
    "Provide the original blog URL so we can add a backlink when pasting raw text."
)

_CODE_FENCE = re.compile(r"```(?:html)?", re.IGNORECASE)
_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")

# Schedules a callable to run after the response is sent (e.g. BackgroundTasks.add_task)
Scheduler = Callable[..., Any]


def _is_absolute_http_url(value: str) -> bool:
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _unique(values: list[Any]) -> list[Any]:
    return list(dict.fromkeys(values))


class ConversionRequest(BaseModel):
    """Request body of POST /api/convert."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source_type: SourceType = Field(alias="sourceType")
    source: str
    output_types: list[OutputType] = Field(alias="outputTypes")
    social_platforms: list[SocialPlatform] | None = Field(default=None, alias="socialPlatforms")
    tone: Tone | None = None
    canonical_url: str | None = Field(default=None, alias="canonicalUrl")
    article_title: str | None = Field(default=None, alias="articleTitle")
    article_author: str | None = Field(default=None, alias="articleAuthor")

    @field_validator("source")
    @classmethod
    def _source_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("source_empty", "Provide a blog URL or the article text.")
        return value

    @field_validator("output_types")
    @classmethod
    def _at_least_one_output(cls, value: list[OutputType]) -> list[OutputType]:
        if not value:
            raise PydanticCustomError("output_types_empty", "Select at least one output format.")
        return _unique(value)

    @field_validator("social_platforms")
    @classmethod
    def _dedupe_platforms(cls, value: list[SocialPlatform] | None) -> list[SocialPlatform] | None:
        return _unique(value) if value else value

    @field_validator("canonical_url")
    @classmethod
    def _canonical_is_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not _is_absolute_http_url(value):
            raise PydanticCustomError("invalid_url", "Provide a valid URL for the original article.")
        return value

    @field_validator("article_title", "article_author")
    @classmethod
    def _blank_as_missing(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _url_source_is_url(self) -> ConversionRequest:
        if self.source_type == SourceType.URL and not _is_absolute_http_url(self.source.strip()):
            raise PydanticCustomError("invalid_url", "Provide a valid blog URL.")
        return self

    @property
    def platforms(self) -> tuple[SocialPlatform, ...]:
        """Requested platforms, all three when none were given."""
        return tuple(self.social_platforms) if self.social_platforms else DEFAULT_PLATFORMS

    @property
    def effective_tone(self) -> Tone:
        return self.tone or DEFAULT_TONE


def format_issue(error: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def parse_request(payload: Mapping[str, Any] | ConversionRequest) -> ConversionRequest:
    """Validate a raw request payload.

    Raises:
        ValidationError: With one message per invalid field.
    """
    if isinstance(payload, ConversionRequest):
        return payload
    try:
        return ConversionRequest.model_validate(payload)
    except PydanticValidationError as e:
        details = [format_issue(error) for error in e.errors()]
        raise ValidationError("Invalid input.", details=details) from e


def sanitize_model_html(output: str, canonical_url: str) -> str:
    """Clean model output and guarantee the tracked backlink is present.

    Strips code fences and zero-width characters. Empty output becomes a
    fixed apology paragraph; output without the tracked URL gets a
    fallback backlink paragraph appended.
    """
    cleaned = _ZERO_WIDTH.sub("", _CODE_FENCE.sub("", output)).strip()

    if not cleaned:
        return FALLBACK_OUTPUT

    if canonical_url not in cleaned:
        return f'{cleaned}\n<p><a href="{canonical_url}">{BACKLINK_TEXT}</a></p>'

    return cleaned


class Converter:
    """Runs conversions with injected collaborators.

    Args:
        extractor: Fetches and extracts articles for URL sources.
        provider_factory: Returns the configured LLMProvider. Called once per
            conversion, after content resolution; raises ConfigurationError
            when no API key is set.
        recorder: Persistence target. Defaults to a no-op recorder.
    """

    def __init__(
        self,
        extractor: ArticleExtractor,
        provider_factory: Callable[[], LLMProvider],
        recorder: ConversionRecorder | None = None,
    ) -> None:
        self._extractor = extractor
        self._provider_factory = provider_factory
        self._recorder = recorder or NullRecorder()

    async def _resolve_content(self, request: ConversionRequest) -> tuple[str, ArticleMetadata]:
        if request.source_type == SourceType.URL:
            article = await self._extractor.extract(request.source.strip())
            content, metadata = article.content, article.metadata
        else:
            if not request.canonical_url:
                raise ValidationError(
                    MISSING_BACKLINK_MESSAGE,
                    details=[f"canonicalUrl: {MISSING_BACKLINK_MESSAGE}"],
                )
            content = request.source
            metadata = ArticleMetadata(canonical_url=request.canonical_url)

        return content, ArticleMetadata(
            canonical_url=metadata.canonical_url,
            title=request.article_title or metadata.title,
            author=request.article_author or metadata.author,
            word_count=metadata.word_count,
            excerpt=metadata.excerpt,
        )

    async def _generate_output(
        self,
        provider: LLMProvider,
        output_type: OutputType,
        content: str,
        metadata: ArticleMetadata,
        request: ConversionRequest,
    ) -> str:
        tracked_url = build_tracked_url(metadata.canonical_url, output_type.value)
        prompt = build_prompt(
            output_type,
            content,
            metadata.with_canonical_url(tracked_url),
            platforms=request.platforms,
            tone=request.effective_tone,
        )
        settings = get_default_prompt(output_type)

        try:
            response = await provider.generate(
                prompt,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
            )
        except ModelError as e:
            raise ModelError(
                f"Generating the {output_type.value} output failed: {e.message}",
                provider=e.provider,
                retriable=e.retriable,
                output_type=output_type.value,
            ) from e

        cost = provider.estimate_cost(response.tokens_input, response.tokens_output)
        logger.info(
            f"Generated {output_type.value} with {response.model}: "
            f"{response.tokens_input} in / {response.tokens_output} out tokens, "
            f"{response.latency_ms}ms, ~${cost:.5f}"
        )
        return sanitize_model_html(response.content, tracked_url)

    async def convert(
        self,
        payload: Mapping[str, Any] | ConversionRequest,
        schedule: Scheduler | None = None,
    ) -> ConversionResult:
        """Convert an article into the requested output formats.

        Args:
            payload: Raw request body or an already validated request.
            schedule: Runs persistence after the response when given
                (e.g. BackgroundTasks.add_task); otherwise persistence runs
                before returning.

        Raises:
            ValidationError: Bad or missing fields.
            FetchError, ExtractionError: Propagated from the extractor.
            ConfigurationError: No API key for the language model.
            ModelError: A generation call failed.
        """
        request = parse_request(payload)
        content, metadata = await self._resolve_content(request)
        provider = self._provider_factory()

        outputs: dict[OutputType, str] = {}
        for output_type in request.output_types:
            outputs[output_type] = await self._generate_output(
                provider, output_type, content, metadata, request
            )

        result = ConversionResult(outputs=outputs, metadata=metadata, raw_content=content)

        record = ConversionRecord.from_result(
            source_type=request.source_type,
            tone=request.effective_tone,
            output_types=tuple(request.output_types),
            social_platforms=request.platforms,
            result=result,
        )
        if schedule is not None:
            schedule(self.persist, record)
        else:
            await asyncio.to_thread(self.persist, record)

        return result

    def persist(self, record: ConversionRecord) -> None:
        """Store a conversion; failures are logged and never raised."""
        try:
            self._recorder.record(record)
        except Exception:
            logger.exception(f"Failed to persist conversion {record.id}")


# Module-level instance for convenience
_converter: Converter | None = None


def get_converter() -> Converter:
    """Get or create the Converter wired from environment settings."""
    global _converter
    if _converter is None:
        settings = Settings.from_env()
        _converter = Converter(
            extractor=get_extractor(timeout=settings.fetch_timeout),
            provider_factory=lambda: get_chat_provider(settings),
            recorder=get_recorder(settings),
        )
    return _converter
