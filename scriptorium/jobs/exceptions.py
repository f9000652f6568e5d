class JobError(Exception):
    """Base exception for job lifecycle errors."""


class JobNotFoundError(JobError):
    """Raised when a job id does not exist."""


class PreconditionFailedError(JobError):
    """Raised when a lifecycle action is not allowed in the job's current state."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class JobValidationError(JobError):
    """Raised when a job creation request is malformed."""
