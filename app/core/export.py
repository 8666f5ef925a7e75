"""Export helpers for edited outputs: downloads and email drafts."""

from __future__ import annotations

import re
from urllib.parse import quote

from bs4 import BeautifulSoup

from app.core.content_types import OutputType

TEXT_BLOCK_TAGS = (
    "p", "li", "h1", "h2", "h3", "h4", "h5", "h6",
    "section", "article", "div", "blockquote", "ul", "ol",
)

_BLANK_LINES = re.compile(r"\n\s*\n+")

DEFAULT_EMAIL_SUBJECT = "Blog2Buzz draft content"


def download_filename(output_type: OutputType | str, extension: str = "html") -> str:
    return f"blog2buzz-{OutputType(output_type).value}.{extension}"


def html_to_text(html: str) -> str:
    """Plain text of an HTML fragment, one block per line."""
    soup = BeautifulSoup(html, "lxml")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for element in soup.find_all(TEXT_BLOCK_TAGS):
        element.append("\n")

    lines = [" ".join(line.split()) for line in soup.get_text().splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def build_mailto(html: str, title: str | None = None) -> str:
    """mailto: link that opens the output as a draft in the mail client."""
    subject = f"Draft: {title}" if title else DEFAULT_EMAIL_SUBJECT
    body = html_to_text(html)
    return f"mailto:?subject={quote(subject)}&body={quote(body)}"
