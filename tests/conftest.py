import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from scriptorium.batch.models import BatchSubmission
from scriptorium.jobs.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ItemOutcome,
    Job,
    JobConfig,
    JobProgress,
    JobStatus,
    JobType,
)
from scriptorium.results.models import (
    OCR_FIELD,
    SUMMARY_FIELD,
    TRANSLATION_FIELD,
    BookCounters,
    FieldWrite,
    Page,
)
from scriptorium.snapshots.models import Snapshot

_TEXT_ATTRS = {
    OCR_FIELD: "ocr_text",
    TRANSLATION_FIELD: "translation_text",
    SUMMARY_FIELD: "summary_text",
}


class InMemoryJobRepository:
    """Mirrors the conditional updates of JobRepository on a dict."""

    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}

    def create(self, job: Job) -> None:
        self.jobs[job.id] = copy.deepcopy(job)

    def find_by_id(self, job_id: str) -> Job | None:
        job = self.jobs.get(job_id)
        return copy.deepcopy(job) if job is not None else None

    def list_jobs(self, *, status=None, job_type=None, book_id=None, limit=50) -> list[Job]:
        jobs = [
            job
            for job in reversed(list(self.jobs.values()))
            if (status is None or job.status == status)
            and (job_type is None or job.type == job_type)
            and (book_id is None or job.book_id == book_id)
        ]
        return copy.deepcopy(jobs[:limit])

    def list_active(self, limit: int) -> list[Job]:
        jobs = [job for job in self.jobs.values() if job.status in ACTIVE_STATUSES]
        return copy.deepcopy(jobs[:limit])

    def record_outcome(self, job_id: str, outcome: ItemOutcome) -> bool:
        job = self.jobs[job_id]
        if job.has_outcome(outcome.item_id) or job.progress.processed >= job.progress.total:
            return False
        job.results.append(outcome)
        job.progress = JobProgress(
            total=job.progress.total,
            completed=job.progress.completed + (1 if outcome.success else 0),
            failed=job.progress.failed + (0 if outcome.success else 1),
        )
        return True

    def mark_processing(self, job_id: str) -> bool:
        job = self.jobs[job_id]
        if job.status != JobStatus.PENDING:
            return False
        job.status = JobStatus.PROCESSING
        return True

    def update_status(self, job_id, expected, new_status, error=None) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.status not in expected:
            return False
        job.status = new_status
        if error is not None:
            job.error = error
        if new_status in TERMINAL_STATUSES:
            job.completed_at = datetime.now(timezone.utc)
        return True

    def finish(self, job_id, status, error=None) -> bool:
        return self.update_status(job_id, ACTIVE_STATUSES, status, error)

    def reset_for_retry(self, job_id, expected) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.status not in expected:
            return False
        job.results = [outcome for outcome in job.results if outcome.success]
        job.progress = JobProgress(
            total=job.progress.total, completed=len(job.results), failed=0
        )
        job.status = JobStatus.PENDING
        job.error = None
        job.completed_at = None
        return True


class InMemoryBatchRepository:
    def __init__(self) -> None:
        self.submissions: list[BatchSubmission] = []
        self.claim_attempts = 0

    def claim(self, submission: BatchSubmission) -> bool:
        self.claim_attempts += 1
        if self._active(submission.job_id) is not None:
            return False
        stored = copy.deepcopy(submission)
        stored.submitted_at = stored.submitted_at or datetime.now(timezone.utc)
        self.submissions.append(stored)
        return True

    def attach_handle(self, submission_id: str, remote_handle: str) -> None:
        submission = self._by_id(submission_id)
        if submission is not None and submission.remote_handle is None:
            submission.remote_handle = remote_handle

    def release(self, submission_id: str) -> None:
        self.submissions = [
            s
            for s in self.submissions
            if not (s.id == submission_id and s.remote_handle is None)
        ]

    def find_active(self, job_id: str) -> BatchSubmission | None:
        submission = self._active(job_id)
        return copy.deepcopy(submission) if submission is not None else None

    def update_remote_state(self, submission_id, remote_state, error=None) -> None:
        submission = self._by_id(submission_id)
        submission.remote_state = remote_state
        if error is not None:
            submission.error = error

    def mark_reconciled(self, submission_id: str) -> bool:
        submission = self._by_id(submission_id)
        if submission.reconciled:
            return False
        submission.reconciled = True
        return True

    def supersede_active(self, job_id: str) -> None:
        submission = self._active(job_id)
        if submission is not None:
            submission.superseded_at = datetime.now(timezone.utc)

    def _active(self, job_id: str) -> BatchSubmission | None:
        for submission in self.submissions:
            if submission.job_id == job_id and submission.superseded_at is None:
                return submission
        return None

    def _by_id(self, submission_id: str) -> BatchSubmission | None:
        for submission in self.submissions:
            if submission.id == submission_id:
                return submission
        return None


class InMemoryPageRepository:
    def __init__(self) -> None:
        self.pages: dict[str, Page] = {}
        self.payloads: dict[tuple[str, str], dict] = {}
        self.books: dict[str, BookCounters] = {}
        self.write_fields_calls = 0

    def add(self, page: Page) -> Page:
        self.pages[page.id] = page
        self.books.setdefault(page.book_id, BookCounters(page.book_id, 0, 0, 0))
        return page

    def find_by_id(self, page_id: str) -> Page | None:
        return self.pages.get(page_id)

    def find_many(self, page_ids: list[str]) -> dict[str, Page]:
        return {pid: self.pages[pid] for pid in page_ids if pid in self.pages}

    def write_field(self, write: FieldWrite) -> str | None:
        page = self.pages.get(write.page_id)
        if page is None:
            return None
        self.pages[page.id] = replace(page, **{_TEXT_ATTRS[write.field]: write.value})
        self.payloads[(page.id, write.field)] = write.payload()
        return page.book_id

    def write_fields(self, field: str, writes: list[FieldWrite]) -> dict[str, str]:
        self.write_fields_calls += 1
        written = {}
        for write in writes:
            book_id = self.write_field(write)
            if book_id is not None:
                written[write.page_id] = book_id
        return written

    def set_derived_image(self, page_id: str, asset_url: str) -> bool:
        page = self.pages.get(page_id)
        if page is None:
            return False
        self.pages[page_id] = replace(page, cropped_photo=asset_url)
        return True

    def recount_book(self, book_id: str) -> BookCounters | None:
        if book_id not in self.books:
            return None
        pages = [page for page in self.pages.values() if page.book_id == book_id]
        counters = BookCounters(
            book_id=book_id,
            pages_count=len(pages),
            pages_with_ocr=sum(1 for page in pages if page.ocr_text),
            pages_with_translation=sum(1 for page in pages if page.translation_text),
        )
        self.books[book_id] = counters
        return counters


class InMemorySnapshotRepository:
    def __init__(self) -> None:
        self.snapshots: list[Snapshot] = []

    def insert(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    def insert_many(self, snapshots: list[Snapshot]) -> None:
        self.snapshots.extend(snapshots)

    def find_by_id(self, snapshot_id: str) -> Snapshot | None:
        for snapshot in self.snapshots:
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def list_for_page(self, page_id: str, field: str | None = None) -> list[Snapshot]:
        matching = [
            (index, s)
            for index, s in enumerate(self.snapshots)
            if s.page_id == page_id and (field is None or s.field == field)
        ]
        matching.sort(key=lambda pair: (pair[1].taken_at, pair[0]), reverse=True)
        return [snapshot for _index, snapshot in matching]


class StepClock:
    """Clock that advances by a fixed step on every read."""

    def __init__(self, step_seconds: float = 1.0) -> None:
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._step = timedelta(seconds=step_seconds)

    def __call__(self) -> datetime:
        self._now += self._step
        return self._now


def make_job(
    item_ids: list[str],
    *,
    job_id: str = "job-1",
    job_type: str = JobType.TRANSCRIBE,
    status: str = JobStatus.PENDING,
    use_batch: bool = False,
) -> Job:
    return Job(
        id=job_id,
        type=job_type,
        status=status,
        config=JobConfig(item_ids=tuple(item_ids), model="test-model", use_batch=use_batch),
        progress=JobProgress(total=len(item_ids)),
        book_id="book-1",
    )


@pytest.fixture
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def batch_repo() -> InMemoryBatchRepository:
    return InMemoryBatchRepository()


@pytest.fixture
def page_repo() -> InMemoryPageRepository:
    return InMemoryPageRepository()


@pytest.fixture
def snapshot_repo() -> InMemorySnapshotRepository:
    return InMemorySnapshotRepository()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def job_factory():
    return make_job
