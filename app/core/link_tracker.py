"""UTM tagging for backlinks embedded in generated content."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.core.errors import InvalidUrlError

UTM_SOURCE = "blog2buzz"
UTM_CAMPAIGN = "content-repurpose"


def _set_param(params: list[tuple[str, str]], key: str, value: str) -> None:
    """Set key in place: first occurrence replaced, later ones dropped."""
    replaced = False
    result: list[tuple[str, str]] = []
    for existing_key, existing_value in params:
        if existing_key != key:
            result.append((existing_key, existing_value))
        elif not replaced:
            result.append((key, value))
            replaced = True
    if not replaced:
        result.append((key, value))
    params[:] = result


def build_tracked_url(
    url: str,
    channel: str,
    overrides: Mapping[str, str] | None = None,
) -> str:
    """Tag a URL with the fixed UTM parameters for a channel.

    Args:
        url: Absolute URL of the source article.
        channel: Destination channel, used as utm_medium (e.g. 'newsletter').
        overrides: Extra query parameters applied last; they win over the
            UTM values on key collisions.

    Returns:
        The absolute URL with tracking parameters set.

    Raises:
        InvalidUrlError: If url is not an absolute URL.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL for tracking: {url!r}") from e
    if not parts.scheme or not parts.netloc:
        raise InvalidUrlError(f"Invalid URL for tracking: {url!r}")

    params = parse_qsl(parts.query, keep_blank_values=True)
    _set_param(params, "utm_source", UTM_SOURCE)
    _set_param(params, "utm_medium", channel)
    _set_param(params, "utm_campaign", UTM_CAMPAIGN)
    for key, value in (overrides or {}).items():
        _set_param(params, key, value)

    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(params), parts.fragment))
