from .base import BaseHttpClient, HttpStatusError
from .llm import ChatCompletionClient, CompletionClient

__all__ = ["BaseHttpClient", "ChatCompletionClient", "CompletionClient", "HttpStatusError"]
