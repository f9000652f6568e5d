"""Validates model output and commits it to pages.

Every overwrite of a text field goes through ``ResultApplier.write`` so that
a snapshot of the previous value is always taken first, and the owning
book's counters are recomputed from a direct count afterwards.
"""

from scriptorium.database.repositories.page_repository import PageRepository
from scriptorium.logging.logger import Log
from scriptorium.results.cleanup import clean_model_output
from scriptorium.results.models import (
    OCR_FIELD,
    TRANSLATION_FIELD,
    ApplyOutcome,
    FieldWrite,
    Page,
)
from scriptorium.snapshots.models import Snapshot
from scriptorium.snapshots.store import SnapshotStore

COUNTED_FIELDS = frozenset({OCR_FIELD, TRANSLATION_FIELD})

PAGE_NOT_FOUND = "Page not found"
EMPTY_OUTPUT = "Model returned no text"


class ResultApplier:
    def __init__(self, page_repo: PageRepository, snapshot_store: SnapshotStore) -> None:
        self._page_repo = page_repo
        self._snapshots = snapshot_store

    def apply(
        self,
        page_id: str,
        field: str,
        raw_output: str,
        *,
        model: str,
        source: str,
        job_id: str | None = None,
    ) -> ApplyOutcome:
        """Clean ``raw_output`` and write it to ``field`` of the page.

        A page that no longer exists yields a failed outcome instead of an
        exception.
        """
        cleaned = clean_model_output(raw_output)
        if not cleaned.text:
            return ApplyOutcome(page_id=page_id, success=False, error=EMPTY_OUTPUT)
        if cleaned.defects_removed:
            Log.info(
                f"Removed {cleaned.defects_removed} empty tags from {field} of page {page_id}"
            )
        return self.write(
            FieldWrite(
                page_id=page_id,
                field=field,
                value=cleaned.text,
                source=source,
                model=model,
                job_id=job_id,
                defects_removed=cleaned.defects_removed,
            )
        )

    def write(
        self, write: FieldWrite, restored_from_snapshot_id: str | None = None
    ) -> ApplyOutcome:
        """Snapshot the current value, overwrite it and refresh book counters."""
        page = self._page_repo.find_by_id(write.page_id)
        if page is None:
            Log.warning(f"Page {write.page_id} not found, skipping {write.field} write")
            return ApplyOutcome(page_id=write.page_id, success=False, error=PAGE_NOT_FOUND)

        snapshot_id = None
        current = page.field_text(write.field)
        if current is not None:
            snapshot = self._snapshots.snapshot(
                page.id,
                write.field,
                current,
                book_id=page.book_id,
                job_id=write.job_id,
                restored_from_snapshot_id=restored_from_snapshot_id,
            )
            snapshot_id = snapshot.id

        book_id = self._page_repo.write_field(write)
        if book_id is None:
            Log.warning(f"Page {write.page_id} deleted during {write.field} write")
            return ApplyOutcome(page_id=write.page_id, success=False, error=PAGE_NOT_FOUND)

        if write.field in COUNTED_FIELDS:
            self._page_repo.recount_book(book_id)
        return ApplyOutcome(
            page_id=write.page_id,
            success=True,
            value=write.value,
            defects_removed=write.defects_removed,
            snapshot_id=snapshot_id,
        )

    def apply_many(
        self,
        field: str,
        outputs: dict[str, str],
        *,
        model: str,
        source: str,
        job_id: str | None = None,
    ) -> dict[str, ApplyOutcome]:
        """Apply many outputs for the same field with one multi-page write."""
        pages = self._page_repo.find_many(list(outputs))
        outcomes: dict[str, ApplyOutcome] = {}
        writes: list[FieldWrite] = []
        snapshots: list[Snapshot] = []

        for page_id, raw_output in outputs.items():
            page = pages.get(page_id)
            if page is None:
                outcomes[page_id] = ApplyOutcome(
                    page_id=page_id, success=False, error=PAGE_NOT_FOUND
                )
                continue
            cleaned = clean_model_output(raw_output)
            if not cleaned.text:
                outcomes[page_id] = ApplyOutcome(
                    page_id=page_id, success=False, error=EMPTY_OUTPUT
                )
                continue
            snapshot = self._snapshot_for(page, field, job_id)
            if snapshot is not None:
                snapshots.append(snapshot)
            writes.append(
                FieldWrite(
                    page_id=page_id,
                    field=field,
                    value=cleaned.text,
                    source=source,
                    model=model,
                    job_id=job_id,
                    defects_removed=cleaned.defects_removed,
                )
            )

        if snapshots:
            self._snapshots.snapshot_many(snapshots)
        snapshot_ids = {snapshot.page_id: snapshot.id for snapshot in snapshots}
        written = self._page_repo.write_fields(field, writes)

        for write in writes:
            if write.page_id in written:
                outcomes[write.page_id] = ApplyOutcome(
                    page_id=write.page_id,
                    success=True,
                    value=write.value,
                    defects_removed=write.defects_removed,
                    snapshot_id=snapshot_ids.get(write.page_id),
                )
            else:
                outcomes[write.page_id] = ApplyOutcome(
                    page_id=write.page_id, success=False, error=PAGE_NOT_FOUND
                )

        if field in COUNTED_FIELDS:
            for book_id in sorted(set(written.values())):
                self._page_repo.recount_book(book_id)
        Log.info(f"Applied {len(written)}/{len(outputs)} {field} results in one write")
        return outcomes

    def _snapshot_for(self, page: Page, field: str, job_id: str | None) -> Snapshot | None:
        current = page.field_text(field)
        if current is None:
            return None
        return self._snapshots.build(
            page.id, field, current, book_id=page.book_id, job_id=job_id
        )
