"""Read-only views of the CRUD layer's articles, documents and images."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from kb_retrieval.models import AccessLevel, SourceType


def _join(*parts: Optional[str]) -> str:
    return "\n".join(part for part in parts if part)


@dataclass(frozen=True)
class ArticleRecord:
    """A knowledge-base article (headline plus body)."""

    id: int
    title: str
    description: str
    access_level: str
    updated_at: datetime
    is_active: bool = True

    source_type = SourceType.HEADLINE

    @property
    def text_content(self) -> str:
        """Article body; the title travels separately as the chunk context prefix."""

        return self.description if self.description.strip() else self.title

    @property
    def context_prefix(self) -> str:
        return self.title


@dataclass(frozen=True)
class DocumentRecord:
    """An uploaded file, optionally attached to a parent article."""

    id: int
    filepath: str
    file_type: str
    access_level: str
    updated_at: datetime
    is_active: bool = True
    article_id: Optional[int] = None
    article_title: Optional[str] = None
    article_description: Optional[str] = None
    article_active: bool = False

    source_type = SourceType.DOCUMENT

    @property
    def text_content(self) -> str:
        """Parent-article description, placed ahead of every page while that article is active."""

        if not self.article_active:
            return ""
        return self.article_description or ""

    @property
    def context_prefix(self) -> Optional[str]:
        """Parent-article title prefixed to every chunk while that article is active."""

        if not self.article_active:
            return None
        return self.article_title or None


@dataclass(frozen=True)
class ImageRecord:
    """An uploaded image and its caption."""

    id: int
    filename: str
    description: str
    access_level: str
    updated_at: datetime
    is_active: bool = True

    source_type = SourceType.IMAGE

    @property
    def text_content(self) -> str:
        return _join(f"Image: {self.filename}", self.description)


def normalize_access_level(value: Optional[str]) -> str:
    """Missing or unknown levels fall back to ``employee``, the CRUD layer's default."""

    return AccessLevel.parse(value).value


__all__ = ["ArticleRecord", "DocumentRecord", "ImageRecord", "normalize_access_level"]
