from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from scriptorium.database.connection import get_connection
from scriptorium.jobs.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ItemOutcome,
    Job,
    JobConfig,
    JobProgress,
    JobStatus,
)

_JOB_COLUMNS = """
    id, type, status, book_id, initiated_by, config, total, completed, failed,
    results, error, created_at, updated_at, started_at, completed_at
"""


class JobRepository:
    """Database operations for the jobs table.

    Every write is a targeted conditional UPDATE so that a processor and a
    user-triggered status change never overwrite each other's fields.
    """

    def create(self, job: Job) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO jobs (id, type, status, book_id, initiated_by, config,
                                  total, completed, failed, results)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    job.id,
                    job.type,
                    job.status,
                    job.book_id,
                    job.initiated_by,
                    Jsonb(job.config.to_dict()),
                    job.progress.total,
                    job.progress.completed,
                    job.progress.failed,
                    Jsonb([outcome.to_dict() for outcome in job.results]),
                ),
            )
            conn.commit()

    def find_by_id(self, job_id: str) -> Job | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = %s",
                    (job_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return _row_to_job(row)

    def list_jobs(
        self,
        *,
        status: str | None = None,
        job_type: str | None = None,
        book_id: str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """List jobs newest first, optionally filtered."""
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = %s")
            params.append(status)
        if job_type is not None:
            clauses.append("type = %s")
            params.append(job_type)
        if book_id is not None:
            clauses.append("book_id = %s")
            params.append(book_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs {where} "
                    "ORDER BY created_at DESC LIMIT %s",
                    params,
                )
                rows = cur.fetchall()
        return [_row_to_job(row) for row in rows]

    def list_active(self, limit: int) -> list[Job]:
        """Pending and processing jobs, oldest first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS} FROM jobs
                    WHERE status = ANY(%s)
                    ORDER BY created_at
                    LIMIT %s
                    """,
                    (sorted(ACTIVE_STATUSES), limit),
                )
                rows = cur.fetchall()
        return [_row_to_job(row) for row in rows]

    def record_outcome(self, job_id: str, outcome: ItemOutcome) -> bool:
        """Append an item outcome unless one is already recorded for that item.

        Returns True if this call wrote the outcome.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE jobs
                    SET results = results || %s,
                        completed = completed + %s,
                        failed = failed + %s,
                        updated_at = NOW()
                    WHERE id = %s
                      AND NOT results @> %s
                      AND completed + failed < total
                    """,
                    (
                        Jsonb([outcome.to_dict()]),
                        1 if outcome.success else 0,
                        0 if outcome.success else 1,
                        job_id,
                        Jsonb([{"item_id": outcome.item_id}]),
                    ),
                )
                written = cur.rowcount == 1
            conn.commit()
        return written

    def mark_processing(self, job_id: str) -> bool:
        """Move a pending job to processing. No-op for any other status."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE jobs
                    SET status = 'processing',
                        started_at = COALESCE(started_at, NOW()),
                        updated_at = NOW()
                    WHERE id = %s AND status = 'pending'
                    """,
                    (job_id,),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def update_status(
        self,
        job_id: str,
        expected: frozenset[str],
        new_status: str,
        error: str | None = None,
    ) -> bool:
        """Compare-and-set the status. Terminal statuses also stamp completed_at."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE jobs
                    SET status = %s,
                        error = COALESCE(%s, error),
                        completed_at = CASE WHEN %s THEN NOW() ELSE completed_at END,
                        updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (
                        new_status,
                        error,
                        new_status in TERMINAL_STATUSES,
                        job_id,
                        sorted(expected),
                    ),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def finish(self, job_id: str, status: str, error: str | None = None) -> bool:
        """Mark an active job terminal. Never overrides a pause or cancellation."""
        return self.update_status(job_id, ACTIVE_STATUSES, status, error)

    def reset_for_retry(self, job_id: str, expected: frozenset[str]) -> bool:
        """Drop failed outcomes, zero the failed counter and return to pending."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE jobs
                    SET status = %s,
                        results = COALESCE(
                            (SELECT jsonb_agg(r ORDER BY ord)
                             FROM jsonb_array_elements(results) WITH ORDINALITY AS t(r, ord)
                             WHERE (r->>'success')::boolean),
                            '[]'::jsonb
                        ),
                        completed = (
                            SELECT COUNT(*)
                            FROM jsonb_array_elements(results) AS t(r)
                            WHERE (r->>'success')::boolean
                        ),
                        failed = 0,
                        error = NULL,
                        completed_at = NULL,
                        updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (JobStatus.PENDING, job_id, sorted(expected)),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed


def _row_to_job(row: dict[str, Any]) -> Job:
    return Job(
        id=row["id"],
        type=row["type"],
        status=row["status"],
        config=JobConfig.from_dict(row["config"]),
        progress=JobProgress(
            total=row["total"],
            completed=row["completed"],
            failed=row["failed"],
        ),
        results=[ItemOutcome.from_dict(item) for item in row["results"] or []],
        book_id=row["book_id"],
        initiated_by=row["initiated_by"],
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )
