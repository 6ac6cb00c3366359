"""Split article and document text into bounded, structure-aware passages."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Optional

CHARS_PER_TOKEN = 4

_HEADING_RE = re.compile(r"^\s{0,3}(#{1,6})\s+(.*?)\s*#*\s*$")
_RULE_RE = re.compile(r"^\s{0,3}(?:(?:-\s*){3,}|(?:\*\s*){3,}|(?:_\s*){3,}|={3,})$")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")


def estimate_tokens(text: str) -> int:
    """Approximate the token count of ``text`` (about four characters per token)."""

    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class Section:
    content: str
    title: Optional[str] = None


class StructuralChunker:
    """Turn raw text into chunks that respect headings, paragraphs and a token ceiling."""

    def __init__(self, max_tokens: int = 500, overlap_tokens: int = 50) -> None:
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens must not be negative")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    def split(self, text: str, context_prefix: Optional[str] = None) -> List[str]:
        """Chunk ``text``, prefixing every chunk with ``context_prefix`` and its section title."""

        stripped = (text or "").strip()
        if not stripped:
            return []

        sections = self._heading_sections(stripped)
        if sections is None:
            sections = self._paragraph_sections(stripped)

        chunks: List[str] = []
        for section in sections:
            header = self._header(context_prefix, section.title)
            candidate = f"{header}{section.content}".strip()
            if not candidate:
                continue
            if estimate_tokens(candidate) <= self.max_tokens:
                chunks.append(candidate)
                continue
            chunks.extend(self._window_split(section.content, header))

        chunks = [chunk for chunk in chunks if chunk.strip()]
        if not chunks:
            return [stripped]
        return chunks

    # ------------------------------------------------------------------
    # Segmentation
    # ------------------------------------------------------------------
    def _heading_sections(self, text: str) -> Optional[List[Section]]:
        """Split on markdown headings and horizontal rules; ``None`` when there are no headings."""

        lines = text.splitlines()
        if not any(_HEADING_RE.match(line) for line in lines):
            return None

        sections: List[Section] = []
        pending_titles: List[str] = []
        title: Optional[str] = None
        body: List[str] = []

        def flush() -> None:
            nonlocal title, body
            content = "\n".join(body).strip()
            if content:
                sections.append(Section(content=content, title=title))
            elif title:
                pending_titles.append(title)
            title = None
            body = []

        for line in lines:
            heading = _HEADING_RE.match(line)
            if heading:
                flush()
                current = heading.group(2).strip() or None
                if pending_titles and current:
                    current = " > ".join(pending_titles + [current])
                    pending_titles.clear()
                title = current
                continue
            if _RULE_RE.match(line):
                flush()
                continue
            body.append(line)
        flush()

        if pending_titles:
            sections.append(Section(content=" > ".join(pending_titles)))
        return sections

    def _paragraph_sections(self, text: str) -> List[Section]:
        """Greedily merge blank-line separated paragraphs up to the token budget."""

        paragraphs = [part.strip() for part in _PARAGRAPH_BREAK_RE.split(text) if part.strip()]
        sections: List[Section] = []
        current: List[str] = []

        for paragraph in paragraphs:
            candidate = "\n\n".join(current + [paragraph])
            if current and estimate_tokens(candidate) > self.max_tokens:
                sections.append(Section(content="\n\n".join(current)))
                current = [paragraph]
            else:
                current.append(paragraph)

        if current:
            sections.append(Section(content="\n\n".join(current)))
        return sections

    # ------------------------------------------------------------------
    # Sliding windows
    # ------------------------------------------------------------------
    def _header(self, context_prefix: Optional[str], title: Optional[str]) -> str:
        prefix = " ".join((context_prefix or "").split())
        heading = " ".join((title or "").split())
        if prefix and heading:
            header = f"[{prefix}] {heading}: "
        elif prefix:
            header = f"[{prefix}] "
        elif heading:
            header = f"{heading}: "
        else:
            return ""

        # A header may take at most half of the budget so windows still carry content.
        limit = (self.max_tokens // 2) * CHARS_PER_TOKEN
        if len(header) > limit:
            header = header[: max(limit - 2, 0)].rstrip() + ": " if limit > 2 else ""
        return header

    def _window_split(self, content: str, header: str) -> List[str]:
        body_tokens = max(self.max_tokens - estimate_tokens(header), 1)
        window_chars = body_tokens * CHARS_PER_TOKEN
        overlap_chars = min(self.overlap_tokens * CHARS_PER_TOKEN, window_chars // 2)
        return [f"{header}{window}" for window in sliding_windows(content, window_chars, overlap_chars)]


def sliding_windows(text: str, window_chars: int, overlap_chars: int) -> List[str]:
    """Cut ``text`` into windows of at most ``window_chars`` overlapping by ``overlap_chars``.

    Cuts prefer whitespace in the second half of a window. Consecutive windows
    never leave a gap, so every character lands in at least one window.
    """

    text = text.strip()
    windows: List[str] = []
    start = 0
    length = len(text)

    while start < length:
        end = min(start + window_chars, length)
        if end < length:
            cut = max(
                text.rfind(" ", start + window_chars // 2, end),
                text.rfind("\n", start + window_chars // 2, end),
            )
            if cut > start:
                end = cut

        piece = text[start:end].strip()
        if piece:
            windows.append(piece)
        if end >= length:
            break

        next_start = end - overlap_chars
        if overlap_chars:
            boundary = text.find(" ", next_start, end)
            if boundary != -1:
                next_start = boundary + 1
        start = next_start if next_start > start else end

    return windows


def split_text(
    text: str,
    max_tokens: int,
    overlap_tokens: int,
    context_prefix: Optional[str] = None,
) -> List[str]:
    """Functional shortcut for :meth:`StructuralChunker.split`."""

    return StructuralChunker(max_tokens, overlap_tokens).split(text, context_prefix)


__all__ = ["Section", "StructuralChunker", "estimate_tokens", "sliding_windows", "split_text"]
