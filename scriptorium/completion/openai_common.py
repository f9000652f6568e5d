"""Helpers shared by the OpenAI synchronous and batch adapters."""

from typing import Any

import httpx
import openai

from scriptorium.completion.exceptions import (
    CompletionError,
    CompletionValidationError,
    PermanentProviderError,
    TransientProviderError,
)
from scriptorium.completion.models import CompletionRequest

_QUOTA_CODES = frozenset({"insufficient_quota", "billing_hard_limit_reached"})


def build_chat_messages(request: CompletionRequest) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    if request.image_url:
        content: Any = [
            {"type": "text", "text": request.prompt},
            {"type": "image_url", "image_url": {"url": request.image_url}},
        ]
    else:
        content = request.prompt
    messages.append({"role": "user", "content": content})
    return messages


def translate_openai_error(exc: Exception) -> CompletionError:
    """Map an SDK or transport exception onto the completion error taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        if getattr(exc, "code", None) in _QUOTA_CODES:
            return PermanentProviderError(f"AI provider quota exhausted: {exc}")
        return TransientProviderError(f"AI provider rate limited: {exc}")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return PermanentProviderError(f"AI provider rejected credentials: {exc}")
    if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return CompletionValidationError(f"AI provider rejected request: {exc}")
    if isinstance(exc, (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException)):
        return TransientProviderError(f"AI provider network error: {exc}")
    if isinstance(exc, openai.APIStatusError) and exc.status_code < 500:
        return CompletionValidationError(f"AI provider API error: {exc}")
    return TransientProviderError(f"AI provider API error: {exc}")
