from pathlib import Path

import pytest

from scriptorium.completion.exceptions import PromptTemplateError
from scriptorium.completion.prompt_loader import load_prompt_template


class TestLoadPromptTemplate:
    @pytest.mark.parametrize("name", ["transcribe", "translate", "summarize"])
    def test_bundled_templates_exist(self, name: str) -> None:
        template = load_prompt_template(name)

        assert "{language}" in template
        assert "{context}" in template

    def test_custom_directory(self, tmp_path: Path) -> None:
        (tmp_path / "glossary.txt").write_text("List terms in {text}", encoding="utf-8")

        assert load_prompt_template("glossary", tmp_path) == "List terms in {text}"

    def test_missing_template_raises(self, tmp_path: Path) -> None:
        with pytest.raises(PromptTemplateError, match="Failed to load prompt template 'nope'"):
            load_prompt_template("nope", tmp_path)
