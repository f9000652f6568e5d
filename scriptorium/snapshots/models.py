from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Snapshot:
    """Immutable copy of a page field taken right before it was overwritten."""

    id: str
    page_id: str
    field: str
    previous_value: str
    taken_at: datetime
    book_id: str | None = None
    job_id: str | None = None
    restored_from_snapshot_id: str | None = None


@dataclass(frozen=True)
class RestoreResult:
    success: bool
    snapshot_id: str
    page_id: str | None = None
    error: str | None = None
    new_snapshot_id: str | None = None
