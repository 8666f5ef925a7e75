"""Prompt registry for the conversion pipeline.

Each output type has a template plus its generation settings. Templates
share one context block (framing, article facts, tone, backlink rules)
and end with the verbatim article text. Rendering is pure: the same
arguments always produce the same prompt.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from app.core.content_types import (
    DEFAULT_PLATFORMS,
    ArticleMetadata,
    OutputType,
    SocialPlatform,
    Tone,
)


@dataclass(frozen=True)
class PromptTemplate:
    """A prompt template with metadata."""

    key: str
    name: str
    description: str
    template: str
    variables: list[str]
    temperature: float
    max_tokens: int


TONE_GUIDANCE: dict[Tone, str] = {
    Tone.CONVERSATIONAL: "Adopt a warm, conversational tone with clear transitions and short paragraphs.",
    Tone.PROFESSIONAL: "Use a confident, professional voice with crisp sentences and thoughtful structure.",
    Tone.PLAYFUL: "Lean into an upbeat, playful tone that still communicates the core ideas clearly.",
}

TONE_FALLBACK = "Default to a friendly, confident tone that is easy to skim."

PLATFORM_GUIDANCE: dict[SocialPlatform, str] = {
    SocialPlatform.TWITTER: (
        "Create a concise thread style update using plain language, emojis, and up to two "
        "relevant hashtags. Keep each Tweet under 250 characters."
    ),
    SocialPlatform.LINKEDIN: (
        "Write a short LinkedIn caption that highlights the key takeaway and invites discussion. "
        "Use 2-3 professional yet friendly sentences and add one relevant hashtag."
    ),
    SocialPlatform.INSTAGRAM: (
        "Draft an Instagram caption with an engaging hook, a short summary in 2-3 sentences, "
        "and a strong call-to-action emoji. Include 2-3 short hashtags."
    ),
}

BACKLINK_TEXT = "Read the full article"


DEFAULT_PROMPTS: dict[OutputType, dict] = {
    OutputType.NEWSLETTER: {
        "name": "Newsletter",
        "description": "Newsletter update summarizing the article with takeaways and a backlink.",
        "template": """{shared_context}

Generate HTML for a newsletter update that includes:
- A warm intro framing why this article matters.
- 2-3 short paragraphs that summarize the key insights without repeating the entire article.
- A bulleted list of 3 sharp takeaways or action items.
- A closing sentence that nudges readers to explore more, followed immediately by the backlink anchor.

Formatting rules:
- Use semantic HTML (<article>, <h2>, <p>, <ul>, <li>, <strong>).
- Keep paragraphs under 60 words.
- Never include placeholder text.

Backlink anchor to insert: {backlink_anchor}

Source article content:
{article_text}""",
        "variables": ["shared_context", "backlink_anchor", "article_text"],
        "temperature": 0.7,
        "max_tokens": 1200,
    },
    OutputType.EMAIL: {
        "name": "Email Draft",
        "description": "Campaign-ready email snippet with subject, preheader, body and CTA.",
        "template": """{shared_context}

Generate HTML for a marketing email snippet ready to drop into a campaign tool. Requirements:
- Subject line suggestion in a <p data-role="subject"> element (max 55 characters).
- Preheader suggestion in a <p data-role="preheader"> element (max 90 characters).
- Body content inside a <section data-role="body"> wrapping:
  - A friendly greeting.
  - 2 concise paragraphs covering the core narrative.
  - A short bulleted or numbered list of the main highlights.
  - A single call-to-action button (<a> styled inline) that uses the backlink anchor.
- An optional postscript (<p data-role="ps">) if there's a timely hook.

Favor approachable, professional language that still feels personal.

Backlink anchor to insert inside the CTA button: {backlink_anchor}

Source article content:
{article_text}""",
        "variables": ["shared_context", "backlink_anchor", "article_text"],
        "temperature": 0.7,
        "max_tokens": 1200,
    },
    OutputType.SOCIAL: {
        "name": "Social Posts",
        "description": "One caption per requested platform, each with the backlink.",
        "template": """{shared_context}

Generate HTML that contains a <section> element for each requested platform. Each section must have:
- data-platform attribute set to the platform name (twitter, linkedin, instagram).
- A <h3> heading naming the platform.
- A <p> with the suggested copy.
- The backlink anchor appended at the end of the copy, using natural connective text (e.g., "Read more").

Platform-specific rules:
{platform_guidance}

Always keep emoji use relevant and tasteful.
Never repeat the exact same wording across platforms.

Backlink anchor to include in each section: {backlink_anchor}

Source article content:
{article_text}""",
        "variables": ["shared_context", "platform_guidance", "backlink_anchor", "article_text"],
        "temperature": 0.8,
        "max_tokens": 1000,
    },
}


def get_default_prompt(output_type: OutputType) -> PromptTemplate:
    """Get the prompt template for an output type.

    Raises:
        ValueError: If the output type has no template.
    """
    try:
        data = DEFAULT_PROMPTS[OutputType(output_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown output type: {output_type!r}") from None

    return PromptTemplate(
        key=OutputType(output_type).value,
        name=data["name"],
        description=data["description"],
        template=data["template"],
        variables=data["variables"],
        temperature=data["temperature"],
        max_tokens=data["max_tokens"],
    )


def build_backlink_anchor(metadata: ArticleMetadata) -> str:
    """The tracked backlink the model must embed exactly once."""
    return (
        f'<a href="{metadata.canonical_url}" rel="noopener noreferrer" '
        f'data-utm="true">{BACKLINK_TEXT}</a>'
    )


def tone_guidance(tone: Tone | str | None) -> str:
    if tone is None:
        return TONE_FALLBACK
    try:
        return TONE_GUIDANCE[Tone(tone)]
    except ValueError:
        return TONE_FALLBACK


def build_shared_context(
    metadata: ArticleMetadata,
    backlink_anchor: str,
    tone: Tone | str | None = None,
) -> str:
    lines = [
        "You are Blog2Buzz, an AI writing assistant that repurposes blog posts into channel-ready formats.",
        "The generated content must stand alone, read naturally, and entice readers to click back to the source article.",
    ]
    if metadata.title:
        lines.append(f"Original article title: {metadata.title}.")
    if metadata.author:
        lines.append(f"Primary author: {metadata.author}.")
    if metadata.excerpt:
        lines.append(f"Key excerpt from the article: {metadata.excerpt}")
    if metadata.word_count is not None:
        lines.append(f"Total word count (approximate): {metadata.word_count}.")
    lines.append(tone_guidance(tone))
    lines.append(f"Always embed this backlink exactly once in the most natural spot: {backlink_anchor}.")
    lines.append("Do not invent facts. If a detail is missing in the source text, skip it.")
    return "\n".join(lines)


def build_platform_guidance(platforms: Sequence[SocialPlatform | str]) -> str:
    sections = []
    for platform in platforms:
        platform = SocialPlatform(platform)
        sections.append(f"For {platform.value.upper()}:\n{PLATFORM_GUIDANCE[platform]}")
    return "\n\n".join(sections)


def build_prompt(
    output_type: OutputType | str,
    article_text: str,
    metadata: ArticleMetadata,
    platforms: Sequence[SocialPlatform | str] | None = None,
    tone: Tone | str | None = None,
) -> str:
    """Render the prompt for one output type.

    Args:
        output_type: newsletter, social or email.
        article_text: Cleaned article text, appended verbatim.
        metadata: Article metadata; canonical_url is the (tracked) backlink.
        platforms: Social platforms, only used for social. Defaults to all three.
        tone: Tone key; unknown or missing tones get a generic instruction.

    Raises:
        ValueError: If output_type is not a known output type.
    """
    prompt = get_default_prompt(output_type)
    backlink_anchor = build_backlink_anchor(metadata)

    values = {
        "shared_context": build_shared_context(metadata, backlink_anchor, tone),
        "backlink_anchor": backlink_anchor,
        "article_text": article_text,
    }
    if "platform_guidance" in prompt.variables:
        values["platform_guidance"] = build_platform_guidance(platforms or DEFAULT_PLATFORMS)

    return prompt.template.format(**values)
