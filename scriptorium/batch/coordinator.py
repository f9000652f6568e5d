"""Drives a job through one remote asynchronous batch.

submit -> poll until terminal -> reconcile results into pages. Each call to
``advance`` performs at most one of these steps, and every step reads the
persisted submission first so overlapping invocations converge.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from scriptorium.batch.models import BatchPollResult, BatchSubmission, RemoteBatchState
from scriptorium.completion.base import BaseBatchClient
from scriptorium.completion.exceptions import (
    BatchSubmissionLostError,
    CompletionValidationError,
    PermanentProviderError,
    TransientProviderError,
)
from scriptorium.completion.models import CompletionFailure, CompletionRequest, CompletionSuccess
from scriptorium.completion.request_builder import RequestBuilder
from scriptorium.database.repositories.batch_repository import BatchSubmissionRepository
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.database.repositories.page_repository import PageRepository
from scriptorium.jobs.exceptions import JobNotFoundError
from scriptorium.jobs.models import (
    ACTIVE_STATUSES,
    TARGET_FIELDS,
    AdvanceResult,
    ItemOutcome,
    Job,
    JobStatus,
)
from scriptorium.jobs.state_machine import resolve_final_status
from scriptorium.logging.logger import Log
from scriptorium.results.applier import PAGE_NOT_FOUND, ResultApplier
from scriptorium.results.models import WriteSource

SUBMISSION_LOST = "Batch submission lost"
NO_RESULT = "No result returned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchCoordinator:
    def __init__(
        self,
        *,
        job_repo: JobRepository,
        batch_repo: BatchSubmissionRepository,
        page_repo: PageRepository,
        applier: ResultApplier,
        batch_client: BaseBatchClient,
        request_builder: RequestBuilder,
        max_failure_ratio: float = 1.0,
        submission_grace_seconds: int = 900,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._job_repo = job_repo
        self._batch_repo = batch_repo
        self._page_repo = page_repo
        self._applier = applier
        self._batch_client = batch_client
        self._request_builder = request_builder
        self._max_failure_ratio = max_failure_ratio
        self._submission_grace = timedelta(seconds=submission_grace_seconds)
        self._clock = clock

    def advance(self, job_id: str) -> AdvanceResult:
        """Take the next step for the job's batch."""
        job = self._load(job_id)
        if job.is_terminal:
            return _result(job, 0, "Job already finished")
        if job.status == JobStatus.PAUSED:
            return _result(job, 0, "Job is paused")

        submission = self._batch_repo.find_active(job.id)
        if submission is None:
            return self._submit(job)
        if submission.reconciled:
            return self._finish(job, 0)
        return self._poll(job, submission)

    def _submit(self, job: Job) -> AdvanceResult:
        requests, failures = self._prepare(job)
        processed = 0
        for outcome in failures:
            if self._job_repo.record_outcome(job.id, outcome):
                processed += 1
        if not requests:
            return self._finish(self._load(job.id), processed)

        submission = BatchSubmission(
            id=uuid.uuid4().hex[:12],
            job_id=job.id,
            submitted_item_keys=tuple(request.key for request in requests),
        )
        if not self._batch_repo.claim(submission):
            Log.info(f"Job {job.id} already has an active batch submission")
            return _result(self._load(job.id), processed, "Batch already submitted")

        current = self._load(job.id)
        if current.status not in ACTIVE_STATUSES:
            self._batch_repo.release(submission.id)
            Log.info(f"Job {job.id} is {current.status}, batch not submitted")
            return _result(current, processed, f"Job is {current.status}")

        try:
            handle = self._batch_client.submit(requests, display_name=f"{job.type}-{job.id}")
        except TransientProviderError as exc:
            self._batch_repo.release(submission.id)
            Log.warning(f"Batch submission for job {job.id} failed, will retry: {exc}")
            return _result(current, processed, f"Submission deferred: {exc}")
        except (PermanentProviderError, CompletionValidationError) as exc:
            self._batch_repo.release(submission.id)
            Log.error(f"Batch submission for job {job.id} rejected: {exc}")
            self._job_repo.finish(job.id, JobStatus.FAILED, error=str(exc))
            return _result(self._load(job.id), processed, f"Submission rejected: {exc}")

        self._batch_repo.attach_handle(submission.id, handle)
        self._job_repo.mark_processing(job.id)
        Log.info(f"Submitted {len(requests)} items of job {job.id} as batch {handle}")
        return _result(
            self._load(job.id), processed, f"Submitted {len(requests)} items as batch {handle}"
        )

    def _prepare(self, job: Job) -> tuple[list[CompletionRequest], list[ItemOutcome]]:
        """Build requests for pending items. Items that cannot be prepared fail here."""
        pending = job.pending_item_ids()
        pages = self._page_repo.find_many(pending)
        requests: list[CompletionRequest] = []
        failures: list[ItemOutcome] = []
        for item_id in pending:
            page = pages.get(item_id)
            if page is None:
                failures.append(ItemOutcome.failed(item_id, PAGE_NOT_FOUND))
                continue
            try:
                requests.append(self._request_builder.build(job, page))
            except CompletionValidationError as exc:
                failures.append(ItemOutcome.failed(item_id, str(exc)))
        if failures:
            Log.warning(f"{len(failures)} items of job {job.id} could not be prepared")
        return requests, failures

    def _poll(self, job: Job, submission: BatchSubmission) -> AdvanceResult:
        if submission.remote_handle is None:
            claimed_at = submission.submitted_at or self._clock()
            if self._clock() - claimed_at < self._submission_grace:
                return _result(job, 0, "Batch submission in progress")
            return self._lose(job, submission, "no remote handle was recorded")

        try:
            poll = self._batch_client.poll(submission.remote_handle)
        except BatchSubmissionLostError as exc:
            return self._lose(job, submission, str(exc))
        except TransientProviderError as exc:
            Log.warning(f"Polling batch {submission.remote_handle} failed, will retry: {exc}")
            return _result(job, 0, f"Poll deferred: {exc}")
        except PermanentProviderError as exc:
            Log.error(f"Polling batch {submission.remote_handle} rejected: {exc}")
            self._job_repo.finish(job.id, JobStatus.FAILED, error=str(exc))
            return _result(self._load(job.id), 0, f"Poll rejected: {exc}")

        if poll.state != submission.remote_state:
            self._batch_repo.update_remote_state(submission.id, poll.state, poll.error)

        if poll.state == RemoteBatchState.FAILED:
            error = f"Batch failed: {poll.error or 'unknown error'}"
            Log.error(f"Batch {submission.remote_handle} of job {job.id}: {error}")
            self._job_repo.finish(job.id, JobStatus.FAILED, error=error)
            return _result(self._load(job.id), 0, error)
        if poll.state == RemoteBatchState.SUCCEEDED:
            return self._reconcile(job, submission, poll)

        self._job_repo.mark_processing(job.id)
        return _result(job, 0, f"Batch {poll.state}")

    def _reconcile(
        self, job: Job, submission: BatchSubmission, poll: BatchPollResult
    ) -> AdvanceResult:
        """Write every submitted item's result and record its outcome.

        Items that already have an outcome are skipped, so a rerun after a
        partial reconcile only finishes the rest.
        """
        current = self._load(job.id)
        if current.status not in ACTIVE_STATUSES:
            Log.info(f"Job {job.id} is {current.status}, skipping reconcile")
            return _result(current, 0, f"Job is {current.status}")

        keys = [key for key in submission.submitted_item_keys if not current.has_outcome(key)]
        successes = {
            key: result.output
            for key in keys
            if isinstance(result := poll.results.get(key), CompletionSuccess)
        }
        applied = (
            self._applier.apply_many(
                TARGET_FIELDS[job.type],
                successes,
                model=job.config.model,
                source=WriteSource.BATCH,
                job_id=job.id,
            )
            if successes
            else {}
        )

        processed = 0
        for key in keys:
            result = poll.results.get(key)
            if result is None:
                outcome = ItemOutcome.failed(key, NO_RESULT)
            elif isinstance(result, CompletionFailure):
                outcome = ItemOutcome.failed(key, result.reason)
            else:
                written = applied[key]
                outcome = (
                    ItemOutcome.succeeded(key, written.value)
                    if written.success
                    else ItemOutcome.failed(key, written.error or PAGE_NOT_FOUND)
                )
            if self._job_repo.record_outcome(job.id, outcome):
                processed += 1

        current = self._load(job.id)
        missing = [key for key in submission.submitted_item_keys if not current.has_outcome(key)]
        if missing:
            Log.warning(f"Batch for job {job.id} still has {len(missing)} unrecorded items")
            return _result(current, processed, f"Reconciled {processed} items")

        self._batch_repo.mark_reconciled(submission.id)
        Log.info(f"Reconciled batch {submission.remote_handle} for job {job.id}")
        return self._finish(current, processed)

    def _lose(self, job: Job, submission: BatchSubmission, detail: str) -> AdvanceResult:
        error = f"{SUBMISSION_LOST}: {detail}"
        Log.error(f"Job {job.id}: {error}")
        self._batch_repo.update_remote_state(submission.id, RemoteBatchState.FAILED, error)
        self._job_repo.finish(job.id, JobStatus.FAILED, error=error)
        return _result(self._load(job.id), 0, error)

    def _finish(self, job: Job, processed: int) -> AdvanceResult:
        if job.pending_item_ids() or job.status not in ACTIVE_STATUSES:
            return _result(job, processed, f"Processed {processed} items")
        status = resolve_final_status(job.progress, self._max_failure_ratio)
        self._job_repo.finish(job.id, status)
        job = self._load(job.id)
        Log.info(
            f"Batch job {job.id} {job.status}: {job.progress.completed} completed, "
            f"{job.progress.failed} failed"
        )
        return _result(job, processed, f"Job {job.status}")

    def _load(self, job_id: str) -> Job:
        job = self._job_repo.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job


def _result(job: Job, processed: int, message: str) -> AdvanceResult:
    return AdvanceResult(
        job=job,
        processed=processed,
        remaining=len(job.pending_item_ids()),
        done=job.is_terminal,
        message=message,
    )
