from scriptorium.logging.logger import Log
from scriptorium.results.applier import ResultApplier
from scriptorium.results.models import FieldWrite, WriteSource
from scriptorium.snapshots.exceptions import SnapshotNotFoundError
from scriptorium.snapshots.models import RestoreResult
from scriptorium.snapshots.store import SnapshotStore


class SnapshotRestorer:
    """Re-applies a snapshot as a new overwrite through the regular write path.

    The value being replaced is itself snapshotted, so a restore can be undone
    by restoring that newer snapshot.
    """

    def __init__(self, store: SnapshotStore, applier: ResultApplier) -> None:
        self._store = store
        self._applier = applier

    def restore(self, snapshot_id: str, actor: str) -> RestoreResult:
        try:
            snapshot = self._store.get(snapshot_id)
        except SnapshotNotFoundError:
            return RestoreResult(
                success=False, snapshot_id=snapshot_id, error="Snapshot not found"
            )

        outcome = self._applier.write(
            FieldWrite(
                page_id=snapshot.page_id,
                field=snapshot.field,
                value=snapshot.previous_value,
                source=WriteSource.RESTORE,
                edited_by=actor,
            ),
            restored_from_snapshot_id=snapshot.id,
        )
        if not outcome.success:
            return RestoreResult(
                success=False,
                snapshot_id=snapshot_id,
                page_id=snapshot.page_id,
                error=outcome.error,
            )

        Log.info(
            f"Restored snapshot {snapshot_id} onto {snapshot.field} of page "
            f"{snapshot.page_id} by {actor}"
        )
        return RestoreResult(
            success=True,
            snapshot_id=snapshot_id,
            page_id=snapshot.page_id,
            new_snapshot_id=outcome.snapshot_id,
        )
