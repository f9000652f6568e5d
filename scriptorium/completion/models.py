from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionRequest:
    """One prompt for one item. ``key`` is the item id."""

    key: str
    model: str
    prompt: str
    system_prompt: str = ""
    image_url: str | None = None
    temperature: float = 0.1
    max_output_tokens: int = 8192


@dataclass(frozen=True)
class CompletionSuccess:
    output: str
    input_tokens: int = 0
    output_tokens: int = 0
    kind: str = "success"


@dataclass(frozen=True)
class CompletionFailure:
    reason: str
    kind: str = "failure"


CompletionResult = CompletionSuccess | CompletionFailure
