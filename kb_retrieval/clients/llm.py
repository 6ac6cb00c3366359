"""Client for an OpenAI-compatible chat completion endpoint."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol

import requests

from kb_retrieval.exceptions import LLMError

from .base import BaseHttpClient


class CompletionClient(Protocol):
    """Black-box text completion taking a system and a user message."""

    async def acomplete(
        self, system: str, user: str, *, temperature: float = 0.0, max_tokens: int = 200
    ) -> str:
        """Return the completion text."""


class ChatCompletionClient(BaseHttpClient):
    """Minimal ``/chat/completions`` client used by the reranker."""

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, session=session, timeout=timeout, api_key=api_key)
        self.model = model

    def complete(
        self, system: str, user: str, *, temperature: float = 0.0, max_tokens: int = 200
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = self._post_json("/chat/completions", payload)
        choices: List[Dict[str, Any]] = data.get("choices") or []
        if not choices:
            raise LLMError("Completion response contained no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if content is None:
            raise LLMError("Completion response contained no message content")
        return str(content)

    async def acomplete(
        self, system: str, user: str, *, temperature: float = 0.0, max_tokens: int = 200
    ) -> str:
        return await asyncio.to_thread(
            self.complete, system, user, temperature=temperature, max_tokens=max_tokens
        )


__all__ = ["ChatCompletionClient", "CompletionClient"]
