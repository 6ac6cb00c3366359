import asyncio
from datetime import datetime, timezone

import psycopg
import pytest

import kb_retrieval.storage.db as db
from kb_retrieval.exceptions import ConfigError, DatabaseError
from kb_retrieval.storage import ArticleRecord, InMemorySourceStore

OLD = datetime(2024, 1, 1, tzinfo=timezone.utc)
NEW = datetime(2024, 2, 1, tzinfo=timezone.utc)


class _Cursor:
    def __init__(self, rows, error=None):
        self.rows = rows
        self.error = error
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params):
        if self.error is not None:
            raise self.error
        self.executed.append((query, params))

    def fetchall(self):
        return self.rows


class _Connection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.closed = False

    def cursor(self, row_factory=None):
        return self._cursor

    def close(self):
        self.closed = True


def _patch_connection(monkeypatch, rows=(), error=None):
    connection = _Connection(_Cursor(list(rows), error))
    monkeypatch.setattr(db, "get_connection", lambda dsn=None: connection)
    return connection


def test_in_memory_store_filters_by_timestamp_and_sorts():
    store = InMemorySourceStore(
        articles=[
            ArticleRecord(3, "c", "", "public", NEW),
            ArticleRecord(1, "a", "", "public", NEW),
            ArticleRecord(2, "b", "", "public", OLD),
        ]
    )

    changed = asyncio.run(store.changed_articles(OLD))

    assert [record.id for record in changed] == [1, 3]


def test_postgres_articles_are_mapped_and_normalized(monkeypatch):
    connection = _patch_connection(
        monkeypatch,
        rows=[
            {
                "id": 5,
                "article": "Mensa",
                "description": None,
                "access_level": None,
                "updated_at": datetime(2024, 3, 1, 12, 0),
                "active": True,
            }
        ],
    )
    store = db.PostgresSourceStore("postgresql://test")

    [record] = asyncio.run(store.changed_articles(OLD))

    assert record.title == "Mensa"
    assert record.description == ""
    assert record.access_level == "employee"
    assert record.updated_at.tzinfo == timezone.utc
    assert connection._cursor.executed[0][1] == (OLD,)
    assert connection.closed


def test_postgres_documents_carry_parent_article(monkeypatch):
    _patch_connection(
        monkeypatch,
        rows=[
            {
                "id": 9,
                "filepath": "a.pdf",
                "file_type": "PDF",
                "article_id": 5,
                "access_level": "intern",
                "updated_at": NEW,
                "article_title": "Mensa",
                "article_description": "Menu",
                "article_active": True,
            }
        ],
    )

    [record] = asyncio.run(db.PostgresSourceStore("postgresql://test").changed_documents(OLD))

    assert record.file_type == "pdf"
    assert record.context_prefix == "Mensa"
    assert record.access_level == "intern"


def test_postgres_images_are_public(monkeypatch):
    _patch_connection(
        monkeypatch,
        rows=[{"id": 1, "filename": "map.png", "description": "Map", "updated_at": NEW}],
    )

    [record] = asyncio.run(db.PostgresSourceStore("postgresql://test").changed_images(OLD))

    assert record.access_level == "public"
    assert record.text_content == "Image: map.png\nMap"


def test_query_errors_become_database_errors(monkeypatch):
    connection = _patch_connection(monkeypatch, error=psycopg.OperationalError("gone"))

    with pytest.raises(DatabaseError):
        asyncio.run(db.PostgresSourceStore("postgresql://test").changed_articles(OLD))
    assert connection.closed


def test_missing_dsn_is_a_config_error(monkeypatch):
    monkeypatch.delenv("RAG_DB_DSN", raising=False)

    with pytest.raises(ConfigError):
        db.PostgresSourceStore()
