from typing import Any

from psycopg.rows import dict_row

from scriptorium.database.connection import get_connection
from scriptorium.snapshots.models import Snapshot

_SNAPSHOT_COLUMNS = """
    id, page_id, book_id, field, previous_value, taken_at, job_id,
    restored_from_snapshot_id
"""

_INSERT = """
    INSERT INTO page_snapshots
        (id, page_id, book_id, field, previous_value, taken_at, job_id,
         restored_from_snapshot_id)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
"""


class SnapshotRepository:
    """Insert-only storage for page_snapshots. Rows are never updated."""

    def insert(self, snapshot: Snapshot) -> None:
        with get_connection() as conn:
            conn.execute(_INSERT, _params(snapshot))
            conn.commit()

    def insert_many(self, snapshots: list[Snapshot]) -> None:
        if not snapshots:
            return
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(_INSERT, [_params(snapshot) for snapshot in snapshots])
            conn.commit()

    def find_by_id(self, snapshot_id: str) -> Snapshot | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_SNAPSHOT_COLUMNS} FROM page_snapshots WHERE id = %s",
                    (snapshot_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return _row_to_snapshot(row)

    def list_for_page(self, page_id: str, field: str | None = None) -> list[Snapshot]:
        """Snapshots of a page, newest first."""
        query = f"SELECT {_SNAPSHOT_COLUMNS} FROM page_snapshots WHERE page_id = %s"
        params: list[Any] = [page_id]
        if field is not None:
            query += " AND field = %s"
            params.append(field)
        query += " ORDER BY taken_at DESC, id DESC"
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [_row_to_snapshot(row) for row in rows]


def _params(snapshot: Snapshot) -> tuple[Any, ...]:
    return (
        snapshot.id,
        snapshot.page_id,
        snapshot.book_id,
        snapshot.field,
        snapshot.previous_value,
        snapshot.taken_at,
        snapshot.job_id,
        snapshot.restored_from_snapshot_id,
    )


def _row_to_snapshot(row: dict[str, Any]) -> Snapshot:
    return Snapshot(
        id=row["id"],
        page_id=row["page_id"],
        book_id=row["book_id"],
        field=row["field"],
        previous_value=row["previous_value"],
        taken_at=row["taken_at"],
        job_id=row["job_id"],
        restored_from_snapshot_id=row["restored_from_snapshot_id"],
    )
