"""Tests for export.py"""

from urllib.parse import unquote

from app.core.content_types import OutputType
from app.core.export import DEFAULT_EMAIL_SUBJECT, build_mailto, download_filename, html_to_text


class TestDownloadFilename:
    def test_names(self):
        assert download_filename(OutputType.SOCIAL) == "blog2buzz-social.html"
        assert download_filename("email", "txt") == "blog2buzz-email.txt"


class TestHtmlToText:
    def test_blocks_on_separate_lines(self):
        html = "<h2>Title</h2><p>First   paragraph.</p><ul><li>One</li><li>Two</li></ul>"
        assert html_to_text(html) == "Title\nFirst paragraph.\nOne\nTwo"

    def test_line_breaks_and_links(self):
        html = '<p>Line one<br>Line two <a href="https://example.com">Read the full article</a></p>'
        assert html_to_text(html) == "Line one\nLine two Read the full article"

    def test_blank_runs_collapsed(self):
        html = "<p>A</p><p></p><p></p><p>B</p>"
        assert html_to_text(html) == "A\n\nB"


class TestBuildMailto:
    def test_subject_from_title(self):
        link = build_mailto("<p>Hello there</p>", "My Post")
        assert link.startswith("mailto:?subject=")
        subject, body = link[len("mailto:?subject="):].split("&body=")
        assert unquote(subject) == "Draft: My Post"
        assert unquote(body) == "Hello there"

    def test_default_subject(self):
        link = build_mailto("<p>x</p>")
        assert DEFAULT_EMAIL_SUBJECT.replace(" ", "%20") in link
