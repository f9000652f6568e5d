import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from scriptorium.database.repositories.snapshot_repository import SnapshotRepository
from scriptorium.logging.logger import Log
from scriptorium.snapshots.exceptions import SnapshotNotFoundError
from scriptorium.snapshots.models import Snapshot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotStore:
    """Point-in-time copies of page text fields.

    Snapshots are only ever created and read. There is no pruning here;
    retention is left to the deployment.
    """

    def __init__(
        self,
        repo: SnapshotRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repo = repo
        self._clock = clock

    def build(
        self,
        page_id: str,
        field: str,
        value: str,
        *,
        book_id: str | None = None,
        job_id: str | None = None,
        restored_from_snapshot_id: str | None = None,
    ) -> Snapshot:
        return Snapshot(
            id=uuid.uuid4().hex[:12],
            page_id=page_id,
            field=field,
            previous_value=value,
            taken_at=self._clock(),
            book_id=book_id,
            job_id=job_id,
            restored_from_snapshot_id=restored_from_snapshot_id,
        )

    def snapshot(
        self,
        page_id: str,
        field: str,
        value: str,
        *,
        book_id: str | None = None,
        job_id: str | None = None,
        restored_from_snapshot_id: str | None = None,
    ) -> Snapshot:
        """Persist one immutable copy of ``value``."""
        snapshot = self.build(
            page_id,
            field,
            value,
            book_id=book_id,
            job_id=job_id,
            restored_from_snapshot_id=restored_from_snapshot_id,
        )
        self._repo.insert(snapshot)
        Log.debug(f"Snapshot {snapshot.id} taken of {field} on page {page_id}")
        return snapshot

    def snapshot_many(self, snapshots: list[Snapshot]) -> None:
        self._repo.insert_many(snapshots)
        Log.debug(f"Took {len(snapshots)} snapshots")

    def list(self, page_id: str, field: str | None = None) -> list[Snapshot]:
        return self._repo.list_for_page(page_id, field)

    def get(self, snapshot_id: str) -> Snapshot:
        """Raises:
        SnapshotNotFoundError: if no snapshot with this id exists.
        """
        snapshot = self._repo.find_by_id(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"Snapshot {snapshot_id} not found")
        return snapshot
