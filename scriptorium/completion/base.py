from abc import ABC, abstractmethod

from scriptorium.batch.models import BatchPollResult
from scriptorium.completion.models import CompletionRequest, CompletionSuccess


class BaseCompletionClient(ABC):
    """Contract for synchronous, one-call-per-item completion providers."""

    @abstractmethod
    def complete(self, request: CompletionRequest) -> CompletionSuccess:
        """Run one completion.

        Raises:
            TransientProviderError: on retryable failures.
            PermanentProviderError: when no further call can succeed.
            CompletionValidationError: when the output is unusable.
        """


class BaseBatchClient(ABC):
    """Contract for asynchronous batch completion providers."""

    @abstractmethod
    def submit(self, requests: list[CompletionRequest], display_name: str) -> str:
        """Submit all requests as one batch and return the provider's handle."""

    @abstractmethod
    def poll(self, remote_handle: str) -> BatchPollResult:
        """Fetch the batch state, with keyed results once it has succeeded.

        Raises:
            BatchSubmissionLostError: if the handle is unknown to the provider.
        """
