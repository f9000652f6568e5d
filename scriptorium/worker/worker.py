import time

from scriptorium.config.settings import Settings
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.jobs.models import Job
from scriptorium.logging.logger import Log
from scriptorium.worker.job_runner import JobRunner

class Worker:
    """Sweep loop: list active jobs -> advance each -> sleep."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._settings = settings

    def sweep(self) -> int:
        """Advance every active job once. Returns how many were attempted."""
        jobs = self._try_list_active()
        for job in jobs:
            self._job_runner.run(job.id)
        return len(jobs)

    def run(self, max_sweeps: int | None = None) -> None:
        """Sweep once, or forever in loop mode until interrupted.

        If max_sweeps is set, stop after that many sweeps (for testing).
        """
        mode = self._settings.worker_mode
        Log.info(f"Worker started in {mode} mode")
        sweeps = 0
        try:
            while True:
                count = self.sweep()
                sweeps += 1
                if mode == "once" or (max_sweeps is not None and sweeps >= max_sweeps):
                    break
                if count == 0:
                    Log.debug("No active jobs, sleeping")
                time.sleep(self._settings.worker_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_list_active(self) -> list[Job]:
        """Fetch active jobs. Gracefully handle DB errors."""
        try:
            return self._job_repo.list_active(self._settings.sweep_max_jobs)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return []
