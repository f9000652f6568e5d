from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from scriptorium.batch.models import BatchSubmission
from scriptorium.database.connection import get_connection

_SUBMISSION_COLUMNS = """
    id, job_id, remote_handle, remote_state, submitted_item_keys, reconciled,
    error, submitted_at, updated_at, reconciled_at, superseded_at
"""


class BatchSubmissionRepository:
    """Database operations for the batch_submissions table."""

    def claim(self, submission: BatchSubmission) -> bool:
        """Insert the job's active submission unless one already exists.

        The row is written before the provider is called so that two
        overlapping invocations cannot both submit the same job.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO batch_submissions
                        (id, job_id, remote_state, submitted_item_keys)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (job_id) WHERE superseded_at IS NULL DO NOTHING
                    """,
                    (
                        submission.id,
                        submission.job_id,
                        submission.remote_state,
                        Jsonb(list(submission.submitted_item_keys)),
                    ),
                )
                claimed = cur.rowcount == 1
            conn.commit()
        return claimed

    def attach_handle(self, submission_id: str, remote_handle: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_submissions
                SET remote_handle = %s, updated_at = NOW()
                WHERE id = %s AND remote_handle IS NULL
                """,
                (remote_handle, submission_id),
            )
            conn.commit()

    def release(self, submission_id: str) -> None:
        """Delete a claim that never reached the provider."""
        with get_connection() as conn:
            conn.execute(
                "DELETE FROM batch_submissions WHERE id = %s AND remote_handle IS NULL",
                (submission_id,),
            )
            conn.commit()

    def find_active(self, job_id: str) -> BatchSubmission | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_SUBMISSION_COLUMNS} FROM batch_submissions
                    WHERE job_id = %s AND superseded_at IS NULL
                    """,
                    (job_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return _row_to_submission(row)

    def update_remote_state(
        self, submission_id: str, remote_state: str, error: str | None = None
    ) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_submissions
                SET remote_state = %s, error = COALESCE(%s, error), updated_at = NOW()
                WHERE id = %s
                """,
                (remote_state, error, submission_id),
            )
            conn.commit()

    def mark_reconciled(self, submission_id: str) -> bool:
        """Flip reconciled to true. It never goes back."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_submissions
                    SET reconciled = TRUE, reconciled_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND reconciled = FALSE
                    """,
                    (submission_id,),
                )
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    def supersede_active(self, job_id: str) -> None:
        """Retire the active submission so a retried job can submit again."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_submissions
                SET superseded_at = NOW(), updated_at = NOW()
                WHERE job_id = %s AND superseded_at IS NULL
                """,
                (job_id,),
            )
            conn.commit()


def _row_to_submission(row: dict[str, Any]) -> BatchSubmission:
    return BatchSubmission(
        id=row["id"],
        job_id=row["job_id"],
        remote_handle=row["remote_handle"],
        remote_state=row["remote_state"],
        submitted_item_keys=tuple(row["submitted_item_keys"] or []),
        reconciled=row["reconciled"],
        error=row["error"],
        submitted_at=row["submitted_at"],
        updated_at=row["updated_at"],
        reconciled_at=row["reconciled_at"],
        superseded_at=row["superseded_at"],
    )
