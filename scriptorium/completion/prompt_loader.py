from pathlib import Path

from scriptorium.completion.exceptions import PromptTemplateError

DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def load_prompt_template(name: str, prompt_dir: Path | None = None) -> str:
    """Load a prompt template by name.

    Args:
        name: Template name without extension, e.g. ``transcribe``.
        prompt_dir: Directory holding ``<name>.txt``.
              Defaults to the bundled prompts directory.

    Returns:
        The raw template string with placeholders.

    Raises:
        PromptTemplateError: if the file cannot be read.
    """
    directory = prompt_dir or DEFAULT_PROMPT_DIR
    path = directory / f"{name}.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptTemplateError(f"Failed to load prompt template '{name}': {exc}") from exc
