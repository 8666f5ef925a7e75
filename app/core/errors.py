"""Error taxonomy for the conversion pipeline.

Every error carries the HTTP status it maps to and a single human-readable
message. Only recorder failures are caught inside the pipeline; everything
else propagates to the API boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ConversionError(Exception):
    """Base class for errors surfaced to the API caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON error body."""
        return {"error": self.message}


class ValidationError(ConversionError):
    """Malformed or incomplete request (user-fixable)."""

    status_code = 400

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.details:
            body["details"] = self.details
        return body


class FetchErrorType(str, Enum):
    """Classification of fetch failures."""

    TIMEOUT = "timeout"
    HTTP_4XX = "http_4xx"
    HTTP_5XX = "http_5xx"
    CONNECTION_ERROR = "connection_error"


class FetchError(ConversionError):
    """Source URL unreachable or answered with a non-success status."""

    status_code = 422

    def __init__(
        self,
        message: str,
        error_type: FetchErrorType,
        http_status: int | None = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.http_status is not None:
            body["status"] = self.http_status
        return body


class ExtractionError(ConversionError):
    """Page fetched, but no readable text could be derived from it."""

    status_code = 422


class ConfigurationError(ConversionError):
    """Operator-side misconfiguration, e.g. a missing API key."""

    status_code = 500


class ModelError(ConversionError):
    """The language-model call failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        provider: str,
        retriable: bool = False,
        output_type: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.retriable = retriable
        self.output_type = output_type


class InvalidUrlError(ConversionError):
    """A URL handed to the link tracker is not absolute."""

    status_code = 500
