import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest
from psycopg.types.json import Jsonb

from scriptorium.config.settings import Settings
from scriptorium.database.connection import apply_schema, close_pool, get_connection, init_pool
from scriptorium.database.repositories.job_repository import JobRepository
from scriptorium.jobs.models import Job, JobConfig, JobProgress, JobStatus, JobType


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "scriptorium_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[tuple[str, str]], None, None]:
    cleanup: list[tuple[str, str]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table, row_id in cleanup:
                if table == "jobs":
                    cur.execute("DELETE FROM batch_submissions WHERE job_id = %s", (row_id,))
                    cur.execute("DELETE FROM jobs WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "books":
                    cur.execute("DELETE FROM page_snapshots WHERE book_id = %s", (row_id,))
                    cur.execute("DELETE FROM pages WHERE book_id = %s", (row_id,))
                    cur.execute("DELETE FROM books WHERE id = %s", (row_id,))
        conn.commit()


@pytest.fixture
def seed_book(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, str]],
) -> str:
    """A book with three pages; p1 already has OCR text. Counters start wrong."""
    book_id = f"book-{uuid.uuid4().hex[:8]}"
    with db_conn.cursor() as cur:
        cur.execute(
            "INSERT INTO books (id, title, pages_with_ocr) VALUES (%s, %s, %s)",
            (book_id, "De rerum natura", 42),
        )
        for number in (1, 2, 3):
            cur.execute(
                """
                INSERT INTO pages (id, book_id, page_number, photo, ocr)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (
                    f"{book_id}-p{number}",
                    book_id,
                    number,
                    f"https://images.example/{book_id}/{number}.jpg",
                    Jsonb({"data": "Prima pagina"}) if number == 1 else None,
                ),
            )
    db_conn.commit()
    integration_cleanup.append(("books", book_id))
    return book_id


@pytest.fixture
def seed_job(
    integration_cleanup: list[tuple[str, str]],
) -> Job:
    job = Job(
        id=f"job-{uuid.uuid4().hex[:8]}",
        type=JobType.TRANSCRIBE,
        status=JobStatus.PENDING,
        config=JobConfig(item_ids=("a", "b", "c"), model="m"),
        progress=JobProgress(total=3),
    )
    JobRepository().create(job)
    integration_cleanup.append(("jobs", job.id))
    return job
