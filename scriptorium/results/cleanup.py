"""Structural cleanup of model output before it is written to a page."""

import re
from dataclasses import dataclass

_EMPTY_BRACKET_TAG = re.compile(r"\[\[\w+:\s*\]\]")
_EMPTY_XML_TAG = re.compile(r"<([a-z][a-z0-9-]*)>\s*</\1>", re.IGNORECASE)
_REPEATED_SPACES = re.compile(r"  +")
_SPACES_BEFORE_NEWLINE = re.compile(r" +\n")
_SPACES_AFTER_NEWLINE = re.compile(r"\n +")


@dataclass(frozen=True)
class CleanupResult:
    text: str
    defects_removed: int = 0


def strip_code_fence(text: str) -> str:
    """Remove a markdown fence wrapping the whole output."""
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return text
    lines = cleaned.splitlines()
    if lines and lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines)


def cleanup_empty_tags(text: str) -> CleanupResult:
    """Drop ``[[tag:]]`` and ``<tag></tag>`` annotations that carry no content."""
    if not text:
        return CleanupResult(text=text)

    cleaned, bracket_count = _EMPTY_BRACKET_TAG.subn("", text)
    cleaned, xml_count = _EMPTY_XML_TAG.subn("", cleaned)
    removed = bracket_count + xml_count
    if removed == 0:
        return CleanupResult(text=text)

    cleaned = _REPEATED_SPACES.sub(" ", cleaned)
    cleaned = _SPACES_BEFORE_NEWLINE.sub("\n", cleaned)
    cleaned = _SPACES_AFTER_NEWLINE.sub("\n", cleaned)
    return CleanupResult(text=cleaned, defects_removed=removed)


def clean_model_output(text: str) -> CleanupResult:
    result = cleanup_empty_tags(strip_code_fence(text))
    return CleanupResult(text=result.text.strip(), defects_removed=result.defects_removed)
