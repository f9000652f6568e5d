from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class JobType:
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    SUMMARIZE = "summarize"
    DERIVE_IMAGE = "derive-image"


class JobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


JOB_TYPES = frozenset(
    {JobType.TRANSCRIBE, JobType.TRANSLATE, JobType.SUMMARIZE, JobType.DERIVE_IMAGE}
)
AI_JOB_TYPES = frozenset({JobType.TRANSCRIBE, JobType.TRANSLATE, JobType.SUMMARIZE})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})

# Page field written by each AI job type.
TARGET_FIELDS: dict[str, str] = {
    JobType.TRANSCRIBE: "ocr",
    JobType.TRANSLATE: "translation",
    JobType.SUMMARIZE: "summary",
}


@dataclass(frozen=True)
class JobConfig:
    """Processing parameters fixed at job creation."""

    item_ids: tuple[str, ...]
    model: str
    source_language: str = "Latin"
    target_language: str = "English"
    prompt_name: str | None = None
    use_batch: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_ids": list(self.item_ids),
            "model": self.model,
            "source_language": self.source_language,
            "target_language": self.target_language,
            "prompt_name": self.prompt_name,
            "use_batch": self.use_batch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobConfig":
        return cls(
            item_ids=tuple(data.get("item_ids", [])),
            model=data["model"],
            source_language=data.get("source_language") or "Latin",
            target_language=data.get("target_language") or "English",
            prompt_name=data.get("prompt_name"),
            use_batch=bool(data.get("use_batch", False)),
        )


@dataclass(frozen=True)
class JobProgress:
    total: int
    completed: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.failed


@dataclass(frozen=True)
class ItemOutcome:
    """Result of processing one item, keyed by item id."""

    item_id: str
    success: bool
    output: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("A successful outcome cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("A failed outcome requires an error message")

    @classmethod
    def succeeded(cls, item_id: str, output: str | None = None) -> "ItemOutcome":
        return cls(item_id=item_id, success=True, output=output)

    @classmethod
    def failed(cls, item_id: str, error: str) -> "ItemOutcome":
        return cls(item_id=item_id, success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"item_id": self.item_id, "success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemOutcome":
        return cls(
            item_id=data["item_id"],
            success=bool(data["success"]),
            output=data.get("output"),
            error=data.get("error"),
        )


@dataclass
class Job:
    """A tracked unit of work over an ordered set of pages."""

    id: str
    type: str
    status: str
    config: JobConfig
    progress: JobProgress
    results: list[ItemOutcome] = field(default_factory=list)
    book_id: str | None = None
    initiated_by: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def outcome_for(self, item_id: str) -> ItemOutcome | None:
        for outcome in self.results:
            if outcome.item_id == item_id:
                return outcome
        return None

    def has_outcome(self, item_id: str) -> bool:
        return self.outcome_for(item_id) is not None

    def pending_item_ids(self) -> list[str]:
        """Item ids without a recorded outcome, in stored processing order."""
        done = {outcome.item_id for outcome in self.results}
        return [item_id for item_id in self.config.item_ids if item_id not in done]

    def failed_items(self) -> list[ItemOutcome]:
        return [outcome for outcome in self.results if not outcome.success]


@dataclass(frozen=True)
class AdvanceResult:
    """What one advance invocation did and how much is left."""

    job: Job
    processed: int
    remaining: int
    done: bool
    message: str = ""
