"""Text extraction for uploaded documents and HTML article bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import docx
import lxml.html
from lxml import etree
from pypdf import PdfReader

from kb_retrieval.exceptions import ParseError

_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_BLOCK_TAGS = ("p", "div", "li", "tr", "br", "ul", "ol", "table", "blockquote", "pre")
_DOCX_HEADING_RE = re.compile(r"^Heading\s+(\d)$")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class LoadedPage:
    """Text extracted from one page (PDF) or one whole file (other formats)."""

    text: str
    page: Optional[int] = None


def sanitize_html(text: str) -> str:
    """Strip markup from an article body while keeping its line structure.

    HTML headings become markdown ``#`` lines so the structural chunker still
    sees them. Text without tags is returned unchanged.
    """

    if not text or "<" not in text:
        return text or ""
    try:
        root = lxml.html.fragment_fromstring(text, create_parent="div")
    except (etree.ParserError, ValueError):
        return text

    for element in list(root.iter("script", "style")):
        element.drop_tree()
    for element in root.iter(*_HEADING_TAGS):
        level = int(element.tag[1])
        element.text = f"\n{'#' * level} {element.text or ''}"
        element.tail = "\n" + (element.tail or "")
    for element in root.iter(*_BLOCK_TAGS):
        element.tail = "\n" + (element.tail or "")
    for element in root.iter("p"):
        element.tail = "\n" + (element.tail or "")

    cleaned = root.text_content()
    lines = [line.rstrip() for line in cleaned.splitlines()]
    return _EXCESS_NEWLINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _load_pdf(path: Path) -> List[LoadedPage]:
    try:
        reader = PdfReader(str(path))
        return [
            LoadedPage(text=page.extract_text() or "", page=number)
            for number, page in enumerate(reader.pages, start=1)
        ]
    except Exception as exc:  # PyPdfError subclasses, KeyError and TypeError on malformed objects
        raise ParseError(f"PDF load failed for {path}: {exc}") from exc


def _load_docx(path: Path) -> List[LoadedPage]:
    parts: List[str] = []
    try:
        document = docx.Document(str(path))
        for paragraph in document.paragraphs:
            text = paragraph.text.strip()
            if not text:
                continue
            style_name = paragraph.style.name if paragraph.style is not None else ""
            heading = _DOCX_HEADING_RE.match(style_name or "")
            if heading:
                text = f"{'#' * int(heading.group(1))} {text}"
            parts.append(text)
    except Exception as exc:  # python-docx raises several unrelated types
        raise ParseError(f"DOCX load failed for {path}: {exc}") from exc
    return [LoadedPage(text="\n\n".join(parts))]


def _load_text(path: Path) -> List[LoadedPage]:
    try:
        return [LoadedPage(text=path.read_text(encoding="utf-8", errors="replace"))]
    except OSError as exc:
        raise ParseError(f"Text load failed for {path}: {exc}") from exc


def _load_html(path: Path) -> List[LoadedPage]:
    return [LoadedPage(text=sanitize_html(page.text)) for page in _load_text(path)]


LOADERS: Dict[str, Callable[[Path], List[LoadedPage]]] = {
    "pdf": _load_pdf,
    "docx": _load_docx,
    "md": _load_text,
    "txt": _load_text,
    "html": _load_html,
}


def is_supported(file_type: str) -> bool:
    return (file_type or "").lower() in LOADERS


def load_document(path: Path | str, file_type: str) -> List[LoadedPage]:
    """Extract text pages from ``path``; raises :class:`ParseError` on any failure."""

    loader = LOADERS.get((file_type or "").lower())
    if loader is None:
        raise ParseError(f"Unsupported document type: {file_type!r}")
    resolved = Path(path)
    if not resolved.is_file():
        raise ParseError(f"Document file not found: {resolved}")
    return loader(resolved)


__all__ = ["LOADERS", "LoadedPage", "is_supported", "load_document", "sanitize_html"]
