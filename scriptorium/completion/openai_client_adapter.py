import httpx
import openai

from scriptorium.completion.base import BaseCompletionClient
from scriptorium.completion.exceptions import CompletionValidationError
from scriptorium.completion.models import CompletionRequest, CompletionSuccess
from scriptorium.completion.openai_common import build_chat_messages, translate_openai_error


class OpenAICompletionAdapter(BaseCompletionClient):
    """Completion client built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        # Retries are driven by the processor so they can honour its deadline.
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

    def complete(self, request: CompletionRequest) -> CompletionSuccess:
        try:
            response = self._client.chat.completions.create(
                model=request.model,
                temperature=request.temperature,
                max_tokens=request.max_output_tokens,
                messages=build_chat_messages(request),
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise translate_openai_error(exc) from exc

        if not response.choices:
            raise CompletionValidationError("AI returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise CompletionValidationError("AI returned empty response")

        usage = response.usage
        return CompletionSuccess(
            output=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
