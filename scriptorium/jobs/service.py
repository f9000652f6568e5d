import uuid

from scriptorium.batch.coordinator import BatchCoordinator
from scriptorium.completion.exceptions import CompletionValidationError
from scriptorium.completion.factory import CompletionClientFactory
from scriptorium.completion.request_builder import RequestBuilder
from scriptorium.config.settings import Settings
from scriptorium.database.repositories.batch_repository import BatchSubmissionRepository
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.database.repositories.page_repository import PageRepository
from scriptorium.database.repositories.snapshot_repository import SnapshotRepository
from scriptorium.imaging.http_image_deriver import HttpImageDeriver
from scriptorium.jobs import state_machine
from scriptorium.jobs.exceptions import (
    JobNotFoundError,
    JobValidationError,
    PreconditionFailedError,
)
from scriptorium.jobs.models import (
    AI_JOB_TYPES,
    JOB_TYPES,
    AdvanceResult,
    Job,
    JobConfig,
    JobProgress,
    JobStatus,
)
from scriptorium.logging.logger import Log
from scriptorium.processor.deadline import Deadline
from scriptorium.processor.processor import JobProcessor
from scriptorium.results.applier import ResultApplier
from scriptorium.snapshots.store import SnapshotStore


class JobService:
    """Creates jobs, applies lifecycle actions and dispatches advancement.

    Status changes are compare-and-set against the statuses the action is
    allowed from. Losing that race surfaces as PreconditionFailedError.
    """

    def __init__(
        self,
        *,
        job_repo: JobRepository,
        batch_repo: BatchSubmissionRepository,
        processor: JobProcessor,
        coordinator: BatchCoordinator,
        default_model: str,
        default_source_language: str = "Latin",
        default_target_language: str = "English",
        batch_min_items: int = 50,
        request_builder: RequestBuilder | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._batch_repo = batch_repo
        self._processor = processor
        self._coordinator = coordinator
        self._default_model = default_model
        self._default_source_language = default_source_language
        self._default_target_language = default_target_language
        self._batch_min_items = batch_min_items
        self._request_builder = request_builder or RequestBuilder()

    def create(
        self,
        job_type: str,
        item_ids: list[str],
        *,
        book_id: str | None = None,
        initiated_by: str | None = None,
        model: str | None = None,
        source_language: str | None = None,
        target_language: str | None = None,
        prompt_name: str | None = None,
        use_batch: bool | None = None,
    ) -> Job:
        """Create a pending job over ``item_ids`` in the given order.

        ``use_batch`` defaults to batch mode for AI job types with at least
        ``batch_min_items`` items.

        Raises:
            JobValidationError: on an unknown type, no items, duplicate items,
                batch mode requested for a non-AI job type, or a prompt
                template that cannot be loaded or filled.
        """
        if job_type not in JOB_TYPES:
            raise JobValidationError(f"Unknown job type: {job_type}")
        if not item_ids:
            raise JobValidationError("A job needs at least one item")
        duplicates = sorted({item_id for item_id in item_ids if item_ids.count(item_id) > 1})
        if duplicates:
            raise JobValidationError(f"Duplicate item ids: {', '.join(duplicates)}")
        if use_batch and job_type not in AI_JOB_TYPES:
            raise JobValidationError(f"Job type {job_type} cannot run as a batch")
        if use_batch is None:
            use_batch = job_type in AI_JOB_TYPES and len(item_ids) >= self._batch_min_items
        if prompt_name and job_type in AI_JOB_TYPES:
            try:
                self._request_builder.check_template(prompt_name)
            except CompletionValidationError as exc:
                raise JobValidationError(str(exc)) from exc

        job = Job(
            id=uuid.uuid4().hex[:12],
            type=job_type,
            status=JobStatus.PENDING,
            config=JobConfig(
                item_ids=tuple(item_ids),
                model=model or self._default_model,
                source_language=source_language or self._default_source_language,
                target_language=target_language or self._default_target_language,
                prompt_name=prompt_name,
                use_batch=use_batch,
            ),
            progress=JobProgress(total=len(item_ids)),
            book_id=book_id,
            initiated_by=initiated_by,
        )
        self._job_repo.create(job)
        mode = "batch" if use_batch else "single"
        Log.info(f"Created {job_type} job {job.id} for {len(item_ids)} items ({mode})")
        return job

    def get(self, job_id: str) -> Job:
        job = self._job_repo.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list(
        self,
        *,
        status: str | None = None,
        job_type: str | None = None,
        book_id: str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        return self._job_repo.list_jobs(
            status=status, job_type=job_type, book_id=book_id, limit=limit
        )

    def advance(self, job_id: str, deadline: Deadline) -> AdvanceResult:
        job = self.get(job_id)
        if job.config.use_batch:
            return self._coordinator.advance(job.id)
        return self._processor.advance(job.id, deadline)

    def cancel(self, job_id: str) -> Job:
        return self._transition(job_id, state_machine.CANCEL)

    def pause(self, job_id: str) -> Job:
        return self._transition(job_id, state_machine.PAUSE)

    def resume(self, job_id: str) -> Job:
        return self._transition(job_id, state_machine.RESUME)

    def retry(self, job_id: str) -> Job:
        """Return a failed or cancelled job to pending with only its successes kept."""
        job = self.get(job_id)
        state_machine.check_transition(job.status, state_machine.RETRY)
        if job.config.use_batch:
            self._batch_repo.supersede_active(job.id)
        if not self._job_repo.reset_for_retry(
            job.id, state_machine.allowed_sources(state_machine.RETRY)
        ):
            raise PreconditionFailedError(state_machine.rejection_reason(state_machine.RETRY))
        job = self.get(job_id)
        Log.info(f"Job {job.id} reset for retry: {len(job.pending_item_ids())} items pending")
        return job

    def _transition(self, job_id: str, action: str) -> Job:
        job = self.get(job_id)
        target = state_machine.check_transition(job.status, action)
        if not self._job_repo.update_status(
            job.id, state_machine.allowed_sources(action), target
        ):
            raise PreconditionFailedError(state_machine.rejection_reason(action))
        Log.info(f"Job {job.id} {job.status} -> {target} ({action})")
        return self.get(job_id)


def build_job_service(settings: Settings) -> JobService:
    """Build a JobService with repositories and provider adapters."""
    job_repo = JobRepository()
    batch_repo = BatchSubmissionRepository()
    page_repo = PageRepository()
    applier = ResultApplier(page_repo, SnapshotStore(SnapshotRepository()))
    request_builder = RequestBuilder()
    processor = JobProcessor(
        job_repo=job_repo,
        page_repo=page_repo,
        applier=applier,
        completion_client=CompletionClientFactory.create(settings),
        request_builder=request_builder,
        image_deriver=HttpImageDeriver(
            service_url=settings.image_service_url,
            timeout_seconds=settings.image_service_timeout_seconds,
        ),
        max_attempts=settings.item_max_attempts,
        retry_base_seconds=settings.item_retry_base_seconds,
        retry_max_seconds=settings.item_retry_max_seconds,
    )
    coordinator = BatchCoordinator(
        job_repo=job_repo,
        batch_repo=batch_repo,
        page_repo=page_repo,
        applier=applier,
        batch_client=CompletionClientFactory.create_batch(settings),
        request_builder=request_builder,
        max_failure_ratio=settings.batch_max_failure_ratio,
        submission_grace_seconds=settings.batch_submission_grace_seconds,
    )
    return JobService(
        job_repo=job_repo,
        batch_repo=batch_repo,
        processor=processor,
        coordinator=coordinator,
        default_model=settings.default_model,
        default_source_language=settings.default_source_language,
        default_target_language=settings.default_target_language,
        batch_min_items=settings.batch_min_items,
        request_builder=request_builder,
    )
