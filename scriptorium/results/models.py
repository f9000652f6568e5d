from dataclasses import dataclass
from typing import Any

OCR_FIELD = "ocr"
TRANSLATION_FIELD = "translation"
SUMMARY_FIELD = "summary"

WRITABLE_FIELDS = frozenset({OCR_FIELD, TRANSLATION_FIELD, SUMMARY_FIELD})


class WriteSource:
    SINGLE = "single"
    BATCH = "batch"
    RESTORE = "restore"


@dataclass(frozen=True)
class Page:
    """Domain model for a page (subset of the pages table)."""

    id: str
    book_id: str
    page_number: int | None = None
    photo: str | None = None
    photo_original: str | None = None
    cropped_photo: str | None = None
    crop: dict[str, Any] | None = None
    ocr_text: str | None = None
    translation_text: str | None = None
    summary_text: str | None = None

    @property
    def image_url(self) -> str | None:
        """Image to transcribe: the cropped variant when one exists."""
        return self.cropped_photo or self.photo

    def field_text(self, field: str) -> str | None:
        if field == OCR_FIELD:
            return self.ocr_text
        if field == TRANSLATION_FIELD:
            return self.translation_text
        if field == SUMMARY_FIELD:
            return self.summary_text
        raise ValueError(f"Unknown page field: {field}")


@dataclass(frozen=True)
class FieldWrite:
    """A new value for one text field of one page, with its provenance."""

    page_id: str
    field: str
    value: str
    source: str
    model: str | None = None
    job_id: str | None = None
    defects_removed: int = 0
    edited_by: str | None = None

    def payload(self) -> dict[str, Any]:
        return {
            "data": self.value,
            "model": self.model,
            "source": self.source,
            "job_id": self.job_id,
            "defects_removed": self.defects_removed,
            "edited_by": self.edited_by,
        }


@dataclass(frozen=True)
class ApplyOutcome:
    page_id: str
    success: bool
    value: str | None = None
    defects_removed: int = 0
    error: str | None = None
    snapshot_id: str | None = None


@dataclass(frozen=True)
class BookCounters:
    book_id: str
    pages_count: int
    pages_with_ocr: int
    pages_with_translation: int
