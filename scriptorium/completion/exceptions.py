class CompletionError(Exception):
    """Base exception for completion service errors."""


class TransientProviderError(CompletionError):
    """Timeouts, connection failures, rate limits and 5xx responses. Safe to retry."""


class PermanentProviderError(CompletionError):
    """Authentication, permission or quota failures. Retrying cannot help."""


class CompletionValidationError(CompletionError):
    """The item's input or the model's output is unusable. Not retried."""


class BatchSubmissionLostError(CompletionError):
    """The provider no longer knows the batch handle (expired or purged)."""


class PromptTemplateError(CompletionError):
    """Raised when a prompt template cannot be loaded."""
