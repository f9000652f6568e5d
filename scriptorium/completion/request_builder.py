from pathlib import Path

from scriptorium.completion.exceptions import CompletionValidationError, PromptTemplateError
from scriptorium.completion.models import CompletionRequest
from scriptorium.completion.prompt_loader import load_prompt_template
from scriptorium.jobs.models import Job, JobType
from scriptorium.results.models import Page

_TEMPERATURES: dict[str, float] = {
    JobType.TRANSCRIBE: 0.1,
    JobType.TRANSLATE: 0.3,
    JobType.SUMMARIZE: 0.3,
}

_CONTEXT_LIMIT = 2000


class RequestBuilder:
    """Builds the completion request for one page of a job."""

    def __init__(self, prompt_dir: Path | None = None, system_prompt: str = "") -> None:
        self._prompt_dir = prompt_dir
        self._system_prompt = system_prompt
        self._templates: dict[str, str] = {}

    def build(self, job: Job, page: Page, context: str | None = None) -> CompletionRequest:
        """Raises:
        CompletionValidationError: if the page lacks the input this job type needs.
        """
        image_url: str | None = None
        text = ""
        if job.type == JobType.TRANSCRIBE:
            image_url = page.image_url
            if not image_url:
                raise CompletionValidationError("No image URL")
        elif job.type == JobType.TRANSLATE:
            text = page.ocr_text or ""
            if not text.strip():
                raise CompletionValidationError("No OCR data to translate")
        elif job.type == JobType.SUMMARIZE:
            text = page.translation_text or page.ocr_text or ""
            if not text.strip():
                raise CompletionValidationError("No text to summarize")
        else:
            raise CompletionValidationError(f"Job type {job.type} does not use completions")

        prompt = self.render(
            job.config.prompt_name or job.type,
            language=job.config.source_language,
            target_language=job.config.target_language,
            text=text,
            context=_format_context(context),
        )
        return CompletionRequest(
            key=page.id,
            model=job.config.model,
            prompt=prompt,
            system_prompt=self._system_prompt,
            image_url=image_url,
            temperature=_TEMPERATURES[job.type],
        )

    def render(self, name: str, **values: str) -> str:
        """Fill the named template.

        Raises:
            CompletionValidationError: if the template is missing or uses a
                placeholder that is not supplied.
        """
        template = self._template(name)
        try:
            return template.format(**values)
        except (KeyError, IndexError, ValueError) as exc:
            raise CompletionValidationError(
                f"Prompt template '{name}' is invalid: {exc!r}"
            ) from exc

    def check_template(self, name: str) -> None:
        self.render(name, language="", target_language="", text="", context="")

    def _template(self, name: str) -> str:
        if name not in self._templates:
            try:
                self._templates[name] = load_prompt_template(name, self._prompt_dir)
            except PromptTemplateError as exc:
                raise CompletionValidationError(str(exc)) from exc
        return self._templates[name]


def _format_context(context: str | None) -> str:
    if not context:
        return ""
    return f"\nThe previous page read as follows, for context only:\n{context[-_CONTEXT_LIMIT:]}\n"
