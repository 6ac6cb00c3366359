"""LLM-scored reordering of hybrid search candidates."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, List, Optional, Sequence

from kb_retrieval.clients.llm import CompletionClient
from kb_retrieval.models import SearchResult

logger = logging.getLogger(__name__)

RERANK_SYSTEM_PROMPT = (
    "You are a relevance scoring system. Respond only with a JSON array of integers."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def build_rerank_prompt(query: str, candidates: Sequence[SearchResult], snippet_chars: int) -> str:
    doc_list = "\n\n".join(
        f"[{idx}] {candidate.content[:snippet_chars]}" for idx, candidate in enumerate(candidates)
    )
    return (
        "Rate each document's relevance to the query on a scale of 0-10.\n"
        f'Query: "{query}"\n\n'
        f"Documents:\n{doc_list}\n\n"
        "Respond ONLY with a JSON array of integer scores, one per document. "
        "Example: [8, 3, 9, 1, 5]"
    )


def parse_scores(text: str) -> List[Any]:
    """Parse the model output into a list, tolerating markdown code fences.

    Raises ``ValueError`` when the output is not a JSON array.
    """

    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip() or "[]"
    scores = json.loads(cleaned)
    if not isinstance(scores, list):
        raise ValueError(f"Expected a JSON array, got {type(scores).__name__}")
    return scores


def _as_score(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


class LLMReranker:
    """Ask a completion model to score candidates 0-10 and keep the best ``top_k``.

    Any failure (transport error, timeout, malformed or wrong-length output)
    returns the first ``top_k`` candidates in their original order.
    """

    def __init__(
        self,
        llm: CompletionClient,
        *,
        snippet_chars: int = 300,
        timeout: Optional[float] = None,
        max_tokens: int = 200,
    ) -> None:
        self.llm = llm
        self.snippet_chars = snippet_chars
        self.timeout = timeout
        self.max_tokens = max_tokens

    async def rerank(
        self, query: str, candidates: Sequence[SearchResult], top_k: int
    ) -> List[SearchResult]:
        candidates = list(candidates)
        if len(candidates) <= top_k:
            return candidates

        prompt = build_rerank_prompt(query, candidates, self.snippet_chars)
        try:
            call = self.llm.acomplete(
                RERANK_SYSTEM_PROMPT, prompt, temperature=0.0, max_tokens=self.max_tokens
            )
            text = await (asyncio.wait_for(call, timeout=self.timeout) if self.timeout else call)
            scores = parse_scores(text)
        except Exception as exc:
            logger.error("Reranker failed: %s, returning original top-%d", exc, top_k)
            return candidates[:top_k]

        if len(scores) != len(candidates):
            logger.warning(
                "Reranker returned %d scores for %d documents, falling back",
                len(scores),
                len(candidates),
            )
            return candidates[:top_k]

        scored = [
            candidate.with_rerank_score(_as_score(score))
            for candidate, score in zip(candidates, scores)
        ]
        scored.sort(key=lambda item: item.rerank_score, reverse=True)
        reranked = scored[:top_k]
        logger.info(
            "Reranked %d candidates -> top %d, scores: %s",
            len(candidates),
            top_k,
            [item.rerank_score for item in reranked],
        )
        return reranked


__all__ = ["LLMReranker", "RERANK_SYSTEM_PROMPT", "build_rerank_prompt", "parse_scores"]
