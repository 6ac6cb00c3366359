from __future__ import annotations

import pytest

from kb_retrieval.chunking import (
    StructuralChunker,
    estimate_tokens,
    sliding_windows,
    split_text,
)


def test_estimate_tokens_rounds_up_four_chars_per_token():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_empty_input_returns_no_chunks():
    chunker = StructuralChunker(max_tokens=50, overlap_tokens=5)

    assert chunker.split("") == []
    assert chunker.split("   \n\n  ") == []


def test_headings_become_sections_with_prefixed_titles():
    text = "# Opening hours\nMon-Fri 8-16\n\n# Contact\nlibrary@example.org"

    chunks = split_text(text, max_tokens=100, overlap_tokens=10, context_prefix="Library")

    assert chunks == [
        "[Library] Opening hours: Mon-Fri 8-16",
        "[Library] Contact: library@example.org",
    ]


def test_empty_heading_titles_merge_into_next_section():
    text = "# Services\n## Printing\nColour prints cost 10 cents."

    chunks = split_text(text, max_tokens=100, overlap_tokens=10)

    assert chunks == ["Services > Printing: Colour prints cost 10 cents."]


def test_horizontal_rules_split_sections_when_headings_exist():
    text = "# Rules\nNo food.\n---\nNo drinks."

    chunks = split_text(text, max_tokens=100, overlap_tokens=10)

    assert chunks == ["Rules: No food.", "No drinks."]


def test_paragraphs_are_merged_greedily_without_headings():
    paragraphs = ["alpha " * 10, "beta " * 10, "gamma " * 10]
    text = "\n\n".join(paragraph.strip() for paragraph in paragraphs)

    chunks = split_text(text, max_tokens=30, overlap_tokens=5)

    assert len(chunks) == 2
    assert chunks[0].startswith("alpha") and "beta" in chunks[0]
    assert chunks[1].startswith("gamma")


def test_oversized_section_is_windowed_within_bound():
    words = " ".join(f"word{idx}" for idx in range(400))
    chunker = StructuralChunker(max_tokens=60, overlap_tokens=10)

    chunks = chunker.split(words, context_prefix="Handbook")

    assert len(chunks) > 1
    for chunk in chunks:
        assert chunk.startswith("[Handbook] ")
        assert estimate_tokens(chunk) <= chunker.max_tokens + chunker.overlap_tokens


def test_windowing_does_not_drop_content():
    words = [f"w{idx}" for idx in range(300)]
    chunks = split_text(" ".join(words), max_tokens=40, overlap_tokens=8)

    seen = set()
    for chunk in chunks:
        seen.update(chunk.split())
    assert set(words) <= seen


def test_sliding_windows_overlap_and_cover_text():
    text = " ".join(str(idx) for idx in range(100))

    windows = sliding_windows(text, window_chars=40, overlap_chars=10)

    assert windows[0].startswith("0 1 2")
    assert windows[-1].endswith("99")
    for left, right in zip(windows, windows[1:]):
        assert right.split()[0] in left.split()


def test_long_prefix_is_capped_to_half_the_budget():
    chunker = StructuralChunker(max_tokens=20, overlap_tokens=2)

    chunks = chunker.split("short body", context_prefix="x" * 200)

    assert chunks
    assert all(estimate_tokens(chunk) <= 22 for chunk in chunks)
    assert all(chunk.endswith("short body") for chunk in chunks)


@pytest.mark.parametrize("max_tokens, overlap", [(0, 0), (10, -1)])
def test_invalid_budgets_are_rejected(max_tokens, overlap):
    with pytest.raises(ValueError):
        StructuralChunker(max_tokens=max_tokens, overlap_tokens=overlap)
