from scriptorium.results.applier import ResultApplier
from scriptorium.results.models import BookCounters, FieldWrite, Page, WriteSource
from scriptorium.snapshots.store import SnapshotStore


def _make_applier(page_repo, snapshot_repo) -> ResultApplier:
    return ResultApplier(page_repo, SnapshotStore(snapshot_repo))


class TestApply:
    def test_writes_cleaned_text_with_provenance(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.apply(
            "p1", "ocr", " Textus <unclear></unclear>\n", model="m1",
            source=WriteSource.SINGLE, job_id="job-9",
        )

        assert outcome.success is True
        assert outcome.value == "Textus"
        assert outcome.defects_removed == 1
        payload = page_repo.payloads[("p1", "ocr")]
        assert payload["model"] == "m1"
        assert payload["job_id"] == "job-9"
        assert payload["source"] == "single"

    def test_empty_output_is_rejected(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1", ocr_text="kept"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.apply("p1", "ocr", "[[note:]]", model="m", source=WriteSource.SINGLE)

        assert outcome.success is False
        assert outcome.error == "Model returned no text"
        assert page_repo.pages["p1"].ocr_text == "kept"
        assert snapshot_repo.snapshots == []

    def test_missing_page(self, page_repo, snapshot_repo) -> None:
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.apply("nope", "ocr", "text", model="m", source=WriteSource.SINGLE)

        assert outcome.success is False
        assert outcome.error == "Page not found"


class TestSnapshots:
    def test_snapshots_previous_value(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1", translation_text="old"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.apply(
            "p1", "translation", "new", model="m", source=WriteSource.SINGLE, job_id="j1"
        )

        [snapshot] = snapshot_repo.snapshots
        assert snapshot.previous_value == "old"
        assert snapshot.field == "translation"
        assert snapshot.job_id == "j1"
        assert outcome.snapshot_id == snapshot.id

    def test_no_snapshot_when_field_empty(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.apply("p1", "ocr", "first", model="m", source=WriteSource.SINGLE)

        assert snapshot_repo.snapshots == []
        assert outcome.snapshot_id is None


class TestBookCounters:
    def test_recounts_from_pages(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1", ocr_text="already"))
        page_repo.add(Page(id="p2", book_id="b1"))
        page_repo.books["b1"] = BookCounters("b1", pages_count=7, pages_with_ocr=9, pages_with_translation=0)
        applier = _make_applier(page_repo, snapshot_repo)

        applier.apply("p2", "ocr", "now", model="m", source=WriteSource.SINGLE)

        assert page_repo.books["b1"] == BookCounters("b1", 2, 2, 0)

    def test_summary_does_not_touch_counters(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1"))
        stale = BookCounters("b1", 5, 5, 5)
        page_repo.books["b1"] = stale
        applier = _make_applier(page_repo, snapshot_repo)

        applier.apply("p1", "summary", "short", model="m", source=WriteSource.SINGLE)

        assert page_repo.books["b1"] == stale


class TestApplyMany:
    def test_single_multi_page_write(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1", ocr_text="old one"))
        page_repo.add(Page(id="p2", book_id="b2"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcomes = applier.apply_many(
            "ocr",
            {"p1": "one", "p2": "two", "p3": "three", "p4": "  "},
            model="m",
            source=WriteSource.BATCH,
            job_id="j1",
        )

        assert page_repo.write_fields_calls == 1
        assert outcomes["p1"].success and outcomes["p2"].success
        assert outcomes["p3"].error == "Page not found"
        assert outcomes["p4"].error == "Model returned no text"
        assert [s.page_id for s in snapshot_repo.snapshots] == ["p1"]
        assert page_repo.books["b1"].pages_with_ocr == 1
        assert page_repo.books["b2"].pages_with_ocr == 1

    def test_restore_write_carries_actor(self, page_repo, snapshot_repo) -> None:
        page_repo.add(Page(id="p1", book_id="b1", ocr_text="current"))
        applier = _make_applier(page_repo, snapshot_repo)

        outcome = applier.write(
            FieldWrite(
                page_id="p1", field="ocr", value="older", source=WriteSource.RESTORE,
                edited_by="editor@example.org",
            ),
            restored_from_snapshot_id="snap-1",
        )

        assert outcome.success is True
        assert page_repo.payloads[("p1", "ocr")]["edited_by"] == "editor@example.org"
        assert snapshot_repo.snapshots[0].restored_from_snapshot_id == "snap-1"
