"""PostgreSQL access to the CRUD layer's tables."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, Dict, List

import psycopg
from psycopg import Connection
from psycopg.rows import dict_row

from kb_retrieval.exceptions import ConfigError, DatabaseError

from .records import ArticleRecord, DocumentRecord, ImageRecord, normalize_access_level

CHANGED_ARTICLES_SQL = """
    SELECT id, article, description, access_level, updated_at, active
    FROM hochschuhl_abc
    WHERE updated_at > %s
    ORDER BY id
"""

CHANGED_DOCUMENTS_SQL = """
    SELECT d.id, d.filepath, d.file_type, d.article_id, d.access_level, d.updated_at,
           a.article AS article_title,
           a.description AS article_description,
           COALESCE(a.active, FALSE) AS article_active
    FROM documents d
    LEFT JOIN hochschuhl_abc a ON a.id = d.article_id
    WHERE d.updated_at > %s
    ORDER BY d.id
"""

CHANGED_IMAGES_SQL = """
    SELECT id, filename, description, updated_at
    FROM images
    WHERE updated_at > %s
    ORDER BY id
"""


def get_connection(dsn: str | None = None) -> Connection:
    """Create a PostgreSQL connection using the provided or environment DSN."""

    resolved_dsn = dsn or os.getenv("RAG_DB_DSN")
    if not resolved_dsn:
        raise ConfigError(
            "Database DSN is not configured. Set RAG_DB_DSN or pass dsn explicitly."
        )

    try:
        return psycopg.connect(resolved_dsn)
    except Exception as exc:  # pragma: no cover - passthrough for better context
        raise DatabaseError(f"Failed to connect to database: {exc}") from exc


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PostgresSourceStore:
    """Source store reading ``hochschuhl_abc``, ``documents`` and ``images``.

    Queries run in a worker thread on a fresh connection per call.
    """

    def __init__(self, dsn: str | None = None) -> None:
        self.dsn = dsn or os.getenv("RAG_DB_DSN")
        if not self.dsn:
            raise ConfigError(
                "Database DSN is not configured. Set RAG_DB_DSN or pass dsn explicitly."
            )

    async def changed_articles(self, since: datetime) -> List[ArticleRecord]:
        rows = await asyncio.to_thread(self._fetch, CHANGED_ARTICLES_SQL, since)
        return [
            ArticleRecord(
                id=row["id"],
                title=row["article"] or "",
                description=row["description"] or "",
                access_level=normalize_access_level(row["access_level"]),
                updated_at=_utc(row["updated_at"]),
                is_active=bool(row["active"]),
            )
            for row in rows
        ]

    async def changed_documents(self, since: datetime) -> List[DocumentRecord]:
        rows = await asyncio.to_thread(self._fetch, CHANGED_DOCUMENTS_SQL, since)
        return [
            DocumentRecord(
                id=row["id"],
                filepath=row["filepath"],
                file_type=(row["file_type"] or "").lower(),
                access_level=normalize_access_level(row["access_level"]),
                updated_at=_utc(row["updated_at"]),
                article_id=row["article_id"],
                article_title=row["article_title"],
                article_description=row["article_description"],
                article_active=bool(row["article_active"]),
            )
            for row in rows
        ]

    async def changed_images(self, since: datetime) -> List[ImageRecord]:
        rows = await asyncio.to_thread(self._fetch, CHANGED_IMAGES_SQL, since)
        return [
            ImageRecord(
                id=row["id"],
                filename=row["filename"],
                description=row["description"] or "",
                # Uploaded images are served publicly by the web layer.
                access_level="public",
                updated_at=_utc(row["updated_at"]),
            )
            for row in rows
        ]

    def _fetch(self, query: str, since: datetime) -> List[Dict[str, Any]]:
        conn = get_connection(self.dsn)
        try:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (since,))
                return list(cur.fetchall())
        except psycopg.Error as exc:
            raise DatabaseError(f"Source store query failed: {exc}") from exc
        finally:
            conn.close()


__all__ = ["PostgresSourceStore", "get_connection"]
