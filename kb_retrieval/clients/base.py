"""Shared HTTP plumbing for the completion service: retries and error mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import requests
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from kb_retrieval.exceptions import LLMError

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": "kb-retrieval",
    "Accept": "application/json",
}

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_BODY_EXCERPT_LIMIT = 200


class HttpStatusError(LLMError):
    """Raised when the upstream answers with a non-success status."""

    def __init__(self, status: int, message: str, body_excerpt: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body_excerpt = body_excerpt


class RetryableResponseError(Exception):
    """Internal exception used to trigger retries for retryable responses."""

    def __init__(self, response: requests.Response):
        super().__init__("Retryable response received")
        self.response = response


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    if value.isdigit():
        return float(value)
    try:
        retry_time = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_time.tzinfo is None:
        retry_time = retry_time.replace(tzinfo=timezone.utc)
    return max((retry_time - datetime.now(timezone.utc)).total_seconds(), 0.0)


_fallback_wait = wait_exponential(multiplier=0.5, min=0.5, max=8)


def _retry_wait(retry_state: RetryCallState) -> float:
    """Honor ``Retry-After`` when the upstream sends one."""

    if retry_state.outcome is not None and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        if isinstance(exception, RetryableResponseError):
            wait_seconds = parse_retry_after(exception.response.headers.get("Retry-After"))
            if wait_seconds is not None:
                return wait_seconds
    return _fallback_wait(retry_state)


def _body_excerpt(response: requests.Response) -> Optional[str]:
    text = response.text or ""
    cleaned = " ".join(text.split())
    return cleaned[:_BODY_EXCERPT_LIMIT] or None


class BaseHttpClient:
    """Base class for JSON-over-HTTP clients with retry and error mapping."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        for key, value in DEFAULT_HEADERS.items():
            self.session.headers.setdefault(key, value)
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def close(self) -> None:
        self.session.close()

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=_retry_wait,
        retry=retry_if_exception_type((requests.RequestException, RetryableResponseError)),
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableResponseError(response)
        return response

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._send("POST", url, json=payload)
        except RetryableResponseError as exc:
            response = exc.response
        except requests.RequestException as exc:
            raise LLMError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            excerpt = _body_excerpt(response)
            message = f"Completion service returned HTTP {response.status_code}"
            if excerpt:
                message = f"{message}: {excerpt}"
            raise HttpStatusError(response.status_code, message, body_excerpt=excerpt)

        try:
            return response.json()
        except ValueError as exc:
            raise LLMError("Completion service returned a non-JSON body") from exc


__all__ = ["BaseHttpClient", "HttpStatusError", "RetryableResponseError", "parse_retry_after"]
