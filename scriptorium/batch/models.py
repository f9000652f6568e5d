from dataclasses import dataclass, field
from datetime import datetime

from scriptorium.completion.models import CompletionResult


class RemoteBatchState:
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchSubmission:
    """One remote asynchronous batch covering a job's items."""

    id: str
    job_id: str
    submitted_item_keys: tuple[str, ...]
    remote_handle: str | None = None
    remote_state: str = RemoteBatchState.QUEUED
    reconciled: bool = False
    error: str | None = None
    submitted_at: datetime | None = None
    updated_at: datetime | None = None
    reconciled_at: datetime | None = None
    superseded_at: datetime | None = None


@dataclass(frozen=True)
class BatchPollResult:
    """Remote state of a batch; results are present once it succeeded.

    Keys absent from ``results`` produced no output upstream.
    """

    state: str
    results: dict[str, CompletionResult] = field(default_factory=dict)
    error: str | None = None
