"""Append-only persistence of conversions.

A recorder receives one ConversionRecord per successful conversion.
Supabase is used when SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are set,
a local SQLite file when DB_PATH is set, otherwise nothing is stored.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from app.core.content_types import ArticleMetadata, ConversionResult, OutputType, SocialPlatform, SourceType, Tone
from app.core.settings import Settings

logger = logging.getLogger(__name__)

CONVERSIONS_TABLE = "conversions"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversions (
  id TEXT PRIMARY KEY,
  source_type TEXT NOT NULL,
  tone TEXT NOT NULL,
  output_types TEXT NOT NULL,
  social_platforms TEXT NOT NULL,
  canonical_url TEXT NOT NULL,
  article_title TEXT,
  article_author TEXT,
  outputs TEXT NOT NULL,
  raw_content TEXT NOT NULL,
  metadata TEXT NOT NULL,
  created_at TEXT NOT NULL
);
"""


@dataclass(frozen=True)
class ConversionRecord:
    """Denormalized snapshot of one conversion request and its result."""

    source_type: SourceType
    tone: Tone
    output_types: tuple[OutputType, ...]
    social_platforms: tuple[SocialPlatform, ...]
    metadata: ArticleMetadata
    outputs: dict[OutputType, str]
    raw_content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(
        cls,
        source_type: SourceType,
        tone: Tone,
        output_types: tuple[OutputType, ...],
        social_platforms: tuple[SocialPlatform, ...],
        result: ConversionResult,
    ) -> ConversionRecord:
        return cls(
            source_type=source_type,
            tone=tone,
            output_types=output_types,
            social_platforms=social_platforms,
            metadata=result.metadata,
            outputs=dict(result.outputs),
            raw_content=result.raw_content,
        )

    def to_row(self) -> dict[str, Any]:
        """Column values for the conversions table."""
        return {
            "id": self.id,
            "source_type": self.source_type.value,
            "tone": self.tone.value,
            "output_types": [kind.value for kind in self.output_types],
            "social_platforms": [platform.value for platform in self.social_platforms],
            "canonical_url": self.metadata.canonical_url,
            "article_title": self.metadata.title,
            "article_author": self.metadata.author,
            "outputs": {kind.value: html for kind, html in self.outputs.items()},
            "raw_content": self.raw_content,
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at.isoformat(),
        }


class ConversionRecorder(Protocol):
    def record(self, record: ConversionRecord) -> None:
        """Store a conversion. May raise; callers treat failures as non-fatal."""
        ...


class NullRecorder:
    """Recorder used when no store is configured."""

    def record(self, record: ConversionRecord) -> None:
        return None


class SupabaseRecorder:
    """Insert conversions into a Supabase `conversions` table."""

    def __init__(self, supabase_url: str, service_role_key: str, table: str = CONVERSIONS_TABLE):
        self._url = supabase_url
        self._key = service_role_key
        self._table = table
        self._client = None

    def _get_client(self):
        """Lazy-initialize Supabase client."""
        if self._client is not None:
            return self._client
        from supabase import create_client

        self._client = create_client(self._url, self._key)
        return self._client

    def record(self, record: ConversionRecord) -> None:
        client = self._get_client()
        client.table(self._table).insert(record.to_row()).execute()
        logger.info(f"Persisted conversion {record.id} to Supabase")


class SqliteRecorder:
    """Append conversions to a local SQLite database."""

    def __init__(self, db_path: str):
        if db_path != ":memory:" and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    def record(self, record: ConversionRecord) -> None:
        row = record.to_row()
        for column in ("output_types", "social_platforms", "outputs", "metadata"):
            row[column] = json.dumps(row[column])
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO conversions (
                  id, source_type, tone, output_types, social_platforms, canonical_url,
                  article_title, article_author, outputs, raw_content, metadata, created_at
                ) VALUES (
                  :id, :source_type, :tone, :output_types, :social_platforms, :canonical_url,
                  :article_title, :article_author, :outputs, :raw_content, :metadata, :created_at
                )
                """,
                row,
            )
            self.conn.commit()


def get_recorder(settings: Settings | None = None) -> ConversionRecorder:
    """Pick the recorder for the current configuration."""
    settings = settings or Settings.from_env()
    if settings.supabase_configured:
        return SupabaseRecorder(settings.supabase_url, settings.supabase_service_role_key)
    if settings.db_path:
        return SqliteRecorder(settings.db_path)
    return NullRecorder()
