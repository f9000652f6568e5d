"""Batch completion client built on the OpenAI Batch API.

Requests are uploaded as one JSONL file keyed by ``custom_id``; results are
read back from the batch's output and error files once it completes.
"""

import json
from typing import Any

import httpx
import openai

from scriptorium.batch.models import BatchPollResult, RemoteBatchState
from scriptorium.completion.base import BaseBatchClient
from scriptorium.completion.exceptions import BatchSubmissionLostError
from scriptorium.completion.models import (
    CompletionFailure,
    CompletionRequest,
    CompletionResult,
    CompletionSuccess,
)
from scriptorium.completion.openai_common import build_chat_messages, translate_openai_error
from scriptorium.logging.logger import Log

_CHAT_ENDPOINT = "/v1/chat/completions"

_STATE_MAP: dict[str, str] = {
    "validating": RemoteBatchState.QUEUED,
    "in_progress": RemoteBatchState.RUNNING,
    "finalizing": RemoteBatchState.RUNNING,
    "completed": RemoteBatchState.SUCCEEDED,
    "failed": RemoteBatchState.FAILED,
    "expired": RemoteBatchState.FAILED,
    "cancelling": RemoteBatchState.FAILED,
    "cancelled": RemoteBatchState.FAILED,
}


class OpenAIBatchAdapter(BaseBatchClient):
    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
        completion_window: str = "24h",
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )
        self._completion_window = completion_window

    def submit(self, requests: list[CompletionRequest], display_name: str) -> str:
        payload = "".join(json.dumps(_batch_line(request)) + "\n" for request in requests)
        try:
            upload = self._client.files.create(
                file=(f"{display_name}.jsonl", payload.encode("utf-8")),
                purpose="batch",
            )
            batch = self._client.batches.create(
                input_file_id=upload.id,
                endpoint=_CHAT_ENDPOINT,
                completion_window=self._completion_window,
                metadata={"display_name": display_name},
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise translate_openai_error(exc) from exc
        Log.info(f"Submitted batch {batch.id} ({display_name}) with {len(requests)} requests")
        return batch.id

    def poll(self, remote_handle: str) -> BatchPollResult:
        try:
            batch = self._client.batches.retrieve(remote_handle)
        except openai.NotFoundError as exc:
            raise BatchSubmissionLostError(
                f"Batch {remote_handle} is unknown to the provider: {exc}"
            ) from exc
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise translate_openai_error(exc) from exc

        state = _STATE_MAP.get(batch.status, RemoteBatchState.QUEUED)
        if state == RemoteBatchState.FAILED:
            return BatchPollResult(state=state, error=_describe_failure(batch))
        if state != RemoteBatchState.SUCCEEDED:
            return BatchPollResult(state=state)

        results: dict[str, CompletionResult] = {}
        if batch.output_file_id:
            results.update(self._read_results(batch.output_file_id))
        if batch.error_file_id:
            for key, result in self._read_results(batch.error_file_id).items():
                results.setdefault(key, result)
        return BatchPollResult(state=state, results=results)

    def _read_results(self, file_id: str) -> dict[str, CompletionResult]:
        try:
            content = self._client.files.content(file_id).text
        except openai.NotFoundError as exc:
            raise BatchSubmissionLostError(f"Batch result file {file_id} is gone: {exc}") from exc
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise translate_openai_error(exc) from exc

        results: dict[str, CompletionResult] = {}
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except ValueError as exc:
                Log.warning(f"Skipping unreadable line in batch result file {file_id}: {exc}")
                continue
            key = record.get("custom_id") if isinstance(record, dict) else None
            if key:
                results[key] = parse_result_record(record)
        return results


def _batch_line(request: CompletionRequest) -> dict[str, Any]:
    return {
        "custom_id": request.key,
        "method": "POST",
        "url": _CHAT_ENDPOINT,
        "body": {
            "model": request.model,
            "temperature": request.temperature,
            "max_tokens": request.max_output_tokens,
            "messages": build_chat_messages(request),
        },
    }


def parse_result_record(record: dict[str, Any]) -> CompletionResult:
    """Turn one output-file line into a tagged success or failure."""
    error = record.get("error")
    if error:
        return CompletionFailure(reason=str(error.get("message") or error))

    response = record.get("response") or {}
    status_code = response.get("status_code")
    if status_code != 200:
        return CompletionFailure(reason=f"Provider returned status {status_code}")

    body = response.get("body") or {}
    choices = body.get("choices") or []
    content = choices[0].get("message", {}).get("content") if choices else None
    if not content:
        return CompletionFailure(reason="No response text")

    usage = body.get("usage") or {}
    return CompletionSuccess(
        output=content,
        input_tokens=usage.get("prompt_tokens", 0),
        output_tokens=usage.get("completion_tokens", 0),
    )


def _describe_failure(batch: Any) -> str:
    errors = getattr(batch, "errors", None)
    data = getattr(errors, "data", None) if errors else None
    if data:
        return f"Batch {batch.status}: {data[0].message}"
    return f"Batch {batch.status}"
