from scriptorium.config.settings import Settings
from scriptorium.database.connection import close_pool, init_pool
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.jobs.service import build_job_service
from scriptorium.logging.logger import Log
from scriptorium.worker.job_runner import JobRunner
from scriptorium.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> sweep active jobs."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        job_service = build_job_service(settings)
        job_runner = JobRunner(job_service, settings)
        worker = Worker(JobRepository(), job_runner, settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
