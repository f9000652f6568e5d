"""Example completion adapters.

Use this module as a reference when implementing new provider adapters.
Implement BaseCompletionClient / BaseBatchClient and register the provider
in CompletionClientFactory.
"""

import uuid

from scriptorium.batch.models import BatchPollResult, RemoteBatchState
from scriptorium.completion.base import BaseBatchClient, BaseCompletionClient
from scriptorium.completion.exceptions import BatchSubmissionLostError
from scriptorium.completion.models import CompletionRequest, CompletionResult, CompletionSuccess


def example_output(key: str) -> str:
    return f"[example output for {key}]"


class ExampleCompletionClient(BaseCompletionClient):
    """Returns a fixed text per item. No network calls."""

    def complete(self, request: CompletionRequest) -> CompletionSuccess:
        return CompletionSuccess(output=example_output(request.key))


class ExampleBatchClient(BaseBatchClient):
    """Batches that succeed on the first poll.

    Handles live in process memory only, so a handle from another process
    polls as lost.
    """

    def __init__(self) -> None:
        self._submissions: dict[str, list[str]] = {}

    def submit(self, requests: list[CompletionRequest], display_name: str) -> str:
        handle = f"example-batch-{uuid.uuid4().hex[:8]}"
        self._submissions[handle] = [request.key for request in requests]
        return handle

    def poll(self, remote_handle: str) -> BatchPollResult:
        keys = self._submissions.get(remote_handle)
        if keys is None:
            raise BatchSubmissionLostError(f"Batch {remote_handle} is unknown")
        results: dict[str, CompletionResult] = {
            key: CompletionSuccess(output=example_output(key)) for key in keys
        }
        return BatchPollResult(state=RemoteBatchState.SUCCEEDED, results=results)
