import time
from collections.abc import Callable

from scriptorium.config.settings import Settings
from scriptorium.jobs.models import AdvanceResult
from scriptorium.jobs.service import JobService
from scriptorium.logging.logger import Log
from scriptorium.processor.deadline import Deadline


class JobRunner:
    """Advance one job within the slice budget, catching unexpected errors."""

    def __init__(
        self,
        job_service: JobService,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._job_service = job_service
        self._settings = settings
        self._clock = clock

    def run(self, job_id: str) -> AdvanceResult | None:
        """Execute one advance invocation with error handling.

        An exception leaves the job as it is: every finished item is already
        persisted and the next sweep picks the job up again.
        """
        Log.info(f"Advancing job {job_id}")
        deadline = Deadline(self._settings.slice_budget_seconds, clock=self._clock)
        try:
            result = self._job_service.advance(job_id, deadline)
        except Exception as exc:
            Log.error(f"Advancing job {job_id} failed: {exc}")
            return None
        Log.info(f"Job {job_id}: {result.message} ({result.remaining} remaining)")
        return result
