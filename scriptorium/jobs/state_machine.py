"""Job lifecycle transitions.

pending -> processing -> completed | failed | cancelled, with paused
reachable from pending/processing and returning to pending on resume.
"""

from scriptorium.jobs.exceptions import PreconditionFailedError
from scriptorium.jobs.models import JobProgress, JobStatus

CANCEL = "cancel"
PAUSE = "pause"
RESUME = "resume"
RETRY = "retry"

_ALLOWED_FROM: dict[str, frozenset[str]] = {
    CANCEL: frozenset({JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.PAUSED}),
    PAUSE: frozenset({JobStatus.PENDING, JobStatus.PROCESSING}),
    RESUME: frozenset({JobStatus.PAUSED}),
    RETRY: frozenset({JobStatus.FAILED, JobStatus.CANCELLED}),
}

_TARGET_STATUS: dict[str, str] = {
    CANCEL: JobStatus.CANCELLED,
    PAUSE: JobStatus.PAUSED,
    RESUME: JobStatus.PENDING,
    RETRY: JobStatus.PENDING,
}

_REJECTION_REASONS: dict[str, str] = {
    CANCEL: "Job already finished",
    PAUSE: "Can only pause pending or processing jobs",
    RESUME: "Can only resume paused jobs",
    RETRY: "Can only retry failed or cancelled jobs",
}


def allowed_sources(action: str) -> frozenset[str]:
    """Statuses from which the action may be applied."""
    try:
        return _ALLOWED_FROM[action]
    except KeyError:
        raise PreconditionFailedError(f"Invalid action: {action}") from None


def check_transition(status: str, action: str) -> str:
    """Validate an action against the current status and return the target status.

    Raises:
        PreconditionFailedError: if the action is not allowed from ``status``.
    """
    if status not in allowed_sources(action):
        raise PreconditionFailedError(_REJECTION_REASONS[action])
    return _TARGET_STATUS[action]


def rejection_reason(action: str) -> str:
    return _REJECTION_REASONS[action]


def resolve_final_status(progress: JobProgress, max_failure_ratio: float = 1.0) -> str:
    """Terminal status once every item has an outcome.

    A job fails when nothing succeeded, or when the share of failed items
    exceeds ``max_failure_ratio``. Anything else completes, failures included.
    """
    if progress.total == 0:
        return JobStatus.COMPLETED
    if progress.completed == 0 and progress.failed > 0:
        return JobStatus.FAILED
    if progress.failed / progress.total > max_failure_ratio:
        return JobStatus.FAILED
    return JobStatus.COMPLETED
