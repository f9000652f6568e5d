from typing import Any

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from scriptorium.database.connection import get_connection
from scriptorium.results.models import WRITABLE_FIELDS, BookCounters, FieldWrite, Page

_PAGE_SELECT = """
    SELECT id, book_id, page_number, photo, photo_original, cropped_photo, crop,
           ocr->>'data' AS ocr_text,
           translation->>'data' AS translation_text,
           summary->>'data' AS summary_text
    FROM pages
"""


class PageRepository:
    """Field-scoped reads and writes on the pages and books tables.

    Pages are owned by the document store; only the targeted column of a
    row is ever written here.
    """

    def find_by_id(self, page_id: str) -> Page | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_PAGE_SELECT + " WHERE id = %s", (page_id,))
                row = cur.fetchone()
        if row is None:
            return None
        return _row_to_page(row)

    def find_many(self, page_ids: list[str]) -> dict[str, Page]:
        if not page_ids:
            return {}
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(_PAGE_SELECT + " WHERE id = ANY(%s)", (page_ids,))
                rows = cur.fetchall()
        return {row["id"]: _row_to_page(row) for row in rows}

    def write_field(self, write: FieldWrite) -> str | None:
        """Overwrite one text field. Returns the page's book id, or None if missing."""
        _check_field(write.field)
        query = sql.SQL(
            """
            UPDATE pages
            SET {field} = %s || jsonb_build_object('updated_at', NOW()),
                updated_at = NOW()
            WHERE id = %s
            RETURNING book_id
            """
        ).format(field=sql.Identifier(write.field))
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (Jsonb(write.payload()), write.page_id))
                row = cur.fetchone()
            conn.commit()
        return None if row is None else row[0]

    def write_fields(self, field: str, writes: list[FieldWrite]) -> dict[str, str]:
        """Overwrite one field on many pages in a single statement.

        Returns page id -> book id for the pages that still exist.
        """
        _check_field(field)
        if not writes:
            return {}
        records = [{"id": write.page_id, "payload": write.payload()} for write in writes]
        query = sql.SQL(
            """
            UPDATE pages AS p
            SET {field} = v.payload || jsonb_build_object('updated_at', NOW()),
                updated_at = NOW()
            FROM jsonb_to_recordset(%s) AS v(id text, payload jsonb)
            WHERE p.id = v.id
            RETURNING p.id, p.book_id
            """
        ).format(field=sql.Identifier(field))
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (Jsonb(records),))
                rows = cur.fetchall()
            conn.commit()
        return {row[0]: row[1] for row in rows}

    def set_derived_image(self, page_id: str, asset_url: str) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE pages SET cropped_photo = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (asset_url, page_id),
                )
                updated = cur.rowcount == 1
            conn.commit()
        return updated

    def recount_book(self, book_id: str) -> BookCounters | None:
        """Recompute a book's page counters from the pages themselves."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    UPDATE books
                    SET pages_count = (
                            SELECT COUNT(*) FROM pages WHERE book_id = %(book_id)s
                        ),
                        pages_with_ocr = (
                            SELECT COUNT(*) FROM pages
                            WHERE book_id = %(book_id)s
                              AND COALESCE(ocr->>'data', '') <> ''
                        ),
                        pages_with_translation = (
                            SELECT COUNT(*) FROM pages
                            WHERE book_id = %(book_id)s
                              AND COALESCE(translation->>'data', '') <> ''
                        ),
                        updated_at = NOW()
                    WHERE id = %(book_id)s
                    RETURNING id, pages_count, pages_with_ocr, pages_with_translation
                    """,
                    {"book_id": book_id},
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return BookCounters(
            book_id=row["id"],
            pages_count=row["pages_count"],
            pages_with_ocr=row["pages_with_ocr"],
            pages_with_translation=row["pages_with_translation"],
        )


def _check_field(field: str) -> None:
    if field not in WRITABLE_FIELDS:
        raise ValueError(f"Field '{field}' is not writable")


def _row_to_page(row: dict[str, Any]) -> Page:
    return Page(
        id=row["id"],
        book_id=row["book_id"],
        page_number=row["page_number"],
        photo=row["photo"],
        photo_original=row["photo_original"],
        cropped_photo=row["cropped_photo"],
        crop=row["crop"],
        ocr_text=row["ocr_text"],
        translation_text=row["translation_text"],
        summary_text=row["summary_text"],
    )
