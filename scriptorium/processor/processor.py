import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scriptorium.completion.base import BaseCompletionClient
from scriptorium.completion.exceptions import (
    CompletionValidationError,
    PermanentProviderError,
    TransientProviderError,
)
from scriptorium.completion.request_builder import RequestBuilder
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.database.repositories.page_repository import PageRepository
from scriptorium.imaging.base import BaseImageDeriver
from scriptorium.imaging.exceptions import ImageDerivationError
from scriptorium.jobs.exceptions import JobNotFoundError
from scriptorium.jobs.models import (
    ACTIVE_STATUSES,
    TARGET_FIELDS,
    AdvanceResult,
    ItemOutcome,
    Job,
    JobStatus,
    JobType,
)
from scriptorium.jobs.state_machine import resolve_final_status
from scriptorium.logging.logger import Log
from scriptorium.processor.deadline import Deadline
from scriptorium.results.applier import PAGE_NOT_FOUND, ResultApplier
from scriptorium.results.models import Page, WriteSource

T = TypeVar("T")


class JobProcessor:
    """Advances a job one bounded slice at a time.

    Items are handled in stored order. Each outcome is persisted as soon as
    the item finishes, so an interrupted slice loses at most the item in
    flight and the next invocation starts at the first item without an
    outcome.
    """

    def __init__(
        self,
        *,
        job_repo: JobRepository,
        page_repo: PageRepository,
        applier: ResultApplier,
        completion_client: BaseCompletionClient,
        request_builder: RequestBuilder,
        image_deriver: BaseImageDeriver,
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        retry_max_seconds: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._job_repo = job_repo
        self._page_repo = page_repo
        self._applier = applier
        self._completion_client = completion_client
        self._request_builder = request_builder
        self._image_deriver = image_deriver
        self._max_attempts = max_attempts
        self._retry_base_seconds = retry_base_seconds
        self._retry_max_seconds = retry_max_seconds
        self._sleep = sleep

    def advance(self, job_id: str, deadline: Deadline) -> AdvanceResult:
        """Process pending items until the job is done, stopped or out of time."""
        job = self._load(job_id)
        if job.is_terminal:
            return _result(job, 0, "Job already finished")
        if job.status == JobStatus.PAUSED:
            return _result(job, 0, "Job is paused")

        processed = 0
        context: str | None = None

        for item_id in job.pending_item_ids():
            if deadline.expired:
                Log.info(f"Time budget spent for job {job.id} after {processed} items")
                break

            # Status and outcomes are re-read before every item: a pause,
            # cancel or overlapping invocation must be seen before any
            # provider call is made.
            current = self._load(job.id)
            if current.status not in ACTIVE_STATUSES:
                Log.info(f"Job {job.id} is {current.status}, stopping")
                break
            if current.has_outcome(item_id):
                Log.debug(f"Item {item_id} of job {job.id} already has an outcome")
                continue
            if current.status == JobStatus.PENDING:
                self._job_repo.mark_processing(job.id)

            try:
                outcome = self._process_item(current, item_id, context)
            except PermanentProviderError as exc:
                Log.error(f"Job {job.id} stopped on permanent provider error: {exc}")
                if self._job_repo.record_outcome(job.id, ItemOutcome.failed(item_id, str(exc))):
                    processed += 1
                self._job_repo.finish(job.id, JobStatus.FAILED, error=str(exc))
                return _result(self._load(job.id), processed, f"Provider error: {exc}")

            if self._job_repo.record_outcome(job.id, outcome):
                processed += 1
            else:
                Log.warning(
                    f"Outcome for item {item_id} of job {job.id} was recorded by another invocation"
                )
            context = outcome.output if outcome.success else None

        return self._finish(self._load(job.id), processed)

    def _process_item(self, job: Job, item_id: str, context: str | None) -> ItemOutcome:
        page = self._page_repo.find_by_id(item_id)
        if page is None:
            Log.warning(f"Page {item_id} of job {job.id} not found")
            return ItemOutcome.failed(item_id, PAGE_NOT_FOUND)

        try:
            if job.type == JobType.DERIVE_IMAGE:
                return self._derive_image(page)
            return self._complete(job, page, context)
        except (CompletionValidationError, ImageDerivationError) as exc:
            Log.warning(f"Item {item_id} of job {job.id} failed: {exc}")
            return ItemOutcome.failed(item_id, str(exc))
        except TransientProviderError as exc:
            Log.error(
                f"Item {item_id} of job {job.id} failed after {self._max_attempts} attempts: {exc}"
            )
            return ItemOutcome.failed(item_id, str(exc))

    def _complete(self, job: Job, page: Page, context: str | None) -> ItemOutcome:
        request = self._request_builder.build(job, page, context)
        completion = self._with_retries(
            page.id, lambda: self._completion_client.complete(request)
        )
        applied = self._applier.apply(
            page.id,
            TARGET_FIELDS[job.type],
            completion.output,
            model=job.config.model,
            source=WriteSource.SINGLE,
            job_id=job.id,
        )
        if not applied.success:
            return ItemOutcome.failed(page.id, applied.error or PAGE_NOT_FOUND)
        Log.info(
            f"Wrote {TARGET_FIELDS[job.type]} for page {page.id} "
            f"({completion.input_tokens} in / {completion.output_tokens} out tokens)"
        )
        return ItemOutcome.succeeded(page.id, applied.value)

    def _derive_image(self, page: Page) -> ItemOutcome:
        asset_url = self._with_retries(page.id, lambda: self._image_deriver.derive(page))
        if not self._page_repo.set_derived_image(page.id, asset_url):
            return ItemOutcome.failed(page.id, PAGE_NOT_FOUND)
        Log.info(f"Derived image for page {page.id}: {asset_url}")
        return ItemOutcome.succeeded(page.id, asset_url)

    def _with_retries(self, item_id: str, call: Callable[[], T]) -> T:
        """Run ``call``, retrying transient provider errors with backoff."""

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            Log.warning(
                f"Attempt {retry_state.attempt_number} for item {item_id} failed: {exc}"
            )

        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_base_seconds, max=self._retry_max_seconds
            ),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(call)

    def _finish(self, job: Job, processed: int) -> AdvanceResult:
        remaining = len(job.pending_item_ids())
        if remaining == 0 and job.status in ACTIVE_STATUSES:
            status = resolve_final_status(job.progress)
            self._job_repo.finish(job.id, status)
            job = self._load(job.id)
            Log.info(
                f"Job {job.id} {job.status}: {job.progress.completed} completed, "
                f"{job.progress.failed} failed"
            )
            return _result(job, processed, f"Job {job.status}")
        return _result(job, processed, f"Processed {processed} items, {remaining} remaining")

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
