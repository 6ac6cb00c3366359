from dataclasses import replace
from datetime import datetime, timezone

import pytest

from kb_retrieval.models import (
    AccessFilter,
    AccessLevel,
    Chunk,
    ChunkMetadata,
    SearchResult,
    SourceType,
    SyncStats,
    allowed_levels_for_role,
)
from kb_retrieval.storage import ArticleRecord, DocumentRecord, ImageRecord, normalize_access_level


@pytest.mark.parametrize(
    "role, expected",
    [
        ("admin", ("public", "intern", "employee", "manager", "admin")),
        ("Entwickler", ("public", "intern", "employee", "manager", "admin")),
        ("manager", ("public", "intern", "employee", "manager")),
        ("editor", ("public", "intern", "employee")),
        ("intern", ("public", "intern")),
        ("guest", ("public",)),
        (None, ("public",)),
    ],
)
def test_roles_map_to_cumulative_levels(role, expected):
    assert allowed_levels_for_role(role) == expected


def test_access_filter_membership():
    access = AccessFilter.for_role("intern")

    assert access.allows("public")
    assert access.allows("intern")
    assert not access.allows("employee")
    assert AccessFilter(["public", "public"]).allowed_levels == frozenset({"public"})


def test_unknown_access_level_defaults_to_employee():
    assert AccessLevel.parse("Manager") is AccessLevel.MANAGER
    assert AccessLevel.parse("") is AccessLevel.EMPLOYEE
    assert normalize_access_level("secret") == "employee"


def test_chunk_metadata_dict_omits_missing_fields_and_round_trips():
    metadata = ChunkMetadata(source_type=SourceType.IMAGE, source_id=5, access_level="public")

    assert metadata.to_dict() == {
        "source": "image",
        "source_id": 5,
        "access_level": "public",
        "chunk_index": 0,
    }
    assert ChunkMetadata.from_dict(metadata.to_dict()) == metadata


def test_chunk_ids_are_stable_per_record_page_and_index():
    article = Chunk("text", ChunkMetadata(SourceType.HEADLINE, 3, "public", chunk_index=2))
    page = Chunk("text", ChunkMetadata(SourceType.DOCUMENT, 3, "public", chunk_index=0, page=4))

    assert article.chunk_id == "headline-3-2"
    assert page.chunk_id == "document-3-p4-0"
    assert article.source_key == (SourceType.HEADLINE, 3)


def test_search_result_serialization_includes_rerank_score_when_set():
    result = SearchResult("text", ChunkMetadata(SourceType.HEADLINE, 1, "public"), score=0.5)

    assert "rerank_score" not in result.to_dict()
    assert result.with_rerank_score(7.0).to_dict()["rerank_score"] == 7.0
    assert result.rerank_score is None


def test_sync_stats_counts_documents_by_type():
    stats = SyncStats()
    stats.count_document("pdf")
    stats.count_document("pdf")
    stats.count_document("docx")

    assert stats.to_dict()["documents"] == {"pdf": 2, "docx": 1}


def test_record_text_views():
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    article = ArticleRecord(1, "Mensa", "", "public", stamp)
    document = DocumentRecord(2, "a.pdf", "pdf", "public", stamp, article_title="Mensa", article_active=False)
    image = ImageRecord(3, "plan.png", "Campus map", "public", stamp)

    assert article.text_content == "Mensa"
    assert document.context_prefix is None
    assert image.text_content == "Image: plan.png\nCampus map"


def test_document_text_content_follows_parent_article():
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    attached = DocumentRecord(
        2,
        "menu.pdf",
        "pdf",
        "public",
        stamp,
        article_id=1,
        article_title="Mensa",
        article_description="Weekly menu of the canteen",
        article_active=True,
    )

    assert attached.text_content == "Weekly menu of the canteen"
    assert replace(attached, article_active=False).text_content == ""
    assert replace(attached, article_description=None).text_content == ""


def test_access_filter_accepts_enum_members():
    access = AccessFilter([AccessLevel.PUBLIC, "intern"])

    assert access.allowed_levels == frozenset({"public", "intern"})
    assert access.allows("public")
    assert not access.allows("employee")
