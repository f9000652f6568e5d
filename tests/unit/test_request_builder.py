from pathlib import Path

import pytest

from scriptorium.completion.exceptions import CompletionValidationError
from scriptorium.completion.request_builder import RequestBuilder
from scriptorium.jobs.models import Job, JobConfig, JobProgress, JobStatus, JobType
from scriptorium.results.models import Page


def _job(job_type: str, prompt_name: str | None = None) -> Job:
    return Job(
        id="j1",
        type=job_type,
        status=JobStatus.PROCESSING,
        config=JobConfig(
            item_ids=("p1",),
            model="vision-model",
            source_language="German",
            target_language="French",
            prompt_name=prompt_name,
        ),
        progress=JobProgress(total=1),
    )


class TestTranscribe:
    def test_prefers_cropped_photo(self) -> None:
        page = Page(id="p1", book_id="b1", photo="full.jpg", cropped_photo="crop.jpg")

        request = RequestBuilder().build(_job(JobType.TRANSCRIBE), page)

        assert request.key == "p1"
        assert request.model == "vision-model"
        assert request.image_url == "crop.jpg"
        assert "German" in request.prompt
        assert request.temperature == 0.1

    def test_requires_image(self) -> None:
        with pytest.raises(CompletionValidationError, match="No image URL"):
            RequestBuilder().build(_job(JobType.TRANSCRIBE), Page(id="p1", book_id="b1"))


class TestTranslate:
    def test_uses_ocr_text_and_languages(self) -> None:
        page = Page(id="p1", book_id="b1", ocr_text="Guten Tag")

        request = RequestBuilder().build(_job(JobType.TRANSLATE), page)

        assert "Guten Tag" in request.prompt
        assert "French" in request.prompt
        assert request.image_url is None

    def test_requires_ocr(self) -> None:
        page = Page(id="p1", book_id="b1", ocr_text="   ")

        with pytest.raises(CompletionValidationError, match="No OCR data to translate"):
            RequestBuilder().build(_job(JobType.TRANSLATE), page)

    def test_context_is_truncated_to_tail(self) -> None:
        page = Page(id="p1", book_id="b1", ocr_text="text")
        context = "A" * 3000 + "END"

        request = RequestBuilder().build(_job(JobType.TRANSLATE), page, context)

        assert "END" in request.prompt
        assert "A" * 2001 not in request.prompt


class TestSummarize:
    def test_prefers_translation(self) -> None:
        page = Page(id="p1", book_id="b1", ocr_text="Original", translation_text="Translated")

        request = RequestBuilder().build(_job(JobType.SUMMARIZE), page)

        assert "Translated" in request.prompt
        assert "Original" not in request.prompt

    def test_requires_some_text(self) -> None:
        with pytest.raises(CompletionValidationError, match="No text to summarize"):
            RequestBuilder().build(_job(JobType.SUMMARIZE), Page(id="p1", book_id="b1"))


class TestTemplates:
    def test_named_prompt_from_custom_directory(self, tmp_path: Path) -> None:
        (tmp_path / "diplomatic.txt").write_text("Diplomatic {language}{context}", encoding="utf-8")
        page = Page(id="p1", book_id="b1", photo="p.jpg")

        request = RequestBuilder(prompt_dir=tmp_path).build(
            _job(JobType.TRANSCRIBE, prompt_name="diplomatic"), page
        )

        assert request.prompt == "Diplomatic German"

    def test_derive_image_has_no_prompt(self) -> None:
        with pytest.raises(CompletionValidationError):
            RequestBuilder().build(_job(JobType.DERIVE_IMAGE), Page(id="p1", book_id="b1"))

    def test_missing_template_is_validation_error(self) -> None:
        page = Page(id="p1", book_id="b1", photo="p.jpg")

        with pytest.raises(CompletionValidationError, match="no-such-prompt"):
            RequestBuilder().build(_job(JobType.TRANSCRIBE, prompt_name="no-such-prompt"), page)

    def test_unknown_placeholder_is_validation_error(self, tmp_path: Path) -> None:
        (tmp_path / "broken.txt").write_text("Read {langauge}", encoding="utf-8")
        page = Page(id="p1", book_id="b1", photo="p.jpg")

        with pytest.raises(CompletionValidationError, match="broken"):
            RequestBuilder(prompt_dir=tmp_path).build(
                _job(JobType.TRANSCRIBE, prompt_name="broken"), page
            )

    def test_check_template_accepts_bundled_prompts(self) -> None:
        builder = RequestBuilder()

        for name in (JobType.TRANSCRIBE, JobType.TRANSLATE, JobType.SUMMARIZE):
            builder.check_template(name)
