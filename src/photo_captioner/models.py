"""Records shared by the batch pipeline."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_SYSTEM_PROMPT_TEMPLATE = (
    "You are a professional photographer who specializes in capturing images of {trigger}. "
    "You have been hired to describe a series of images for a photography exhibition. "
    "Provide a detailed description of each image with the context of {trigger}."
)


class InputImage(BaseModel):
    """One discovered image file."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    @classmethod
    def from_path(cls, path: Path) -> "InputImage":
        return cls(name=path.name, path=path)


class ProcessingContext(BaseModel):
    """Read-only context shared by every item of a batch."""

    model_config = ConfigDict(frozen=True)

    trigger_word: str
    system_prompt: str
    user_prompt: str

    @classmethod
    def build(
        cls,
        trigger_word: str,
        user_prompt: str,
        system_prompt_template: str = DEFAULT_SYSTEM_PROMPT_TEMPLATE,
    ) -> "ProcessingContext":
        """
        Render the system prompt for the trigger word and bundle it with the user prompt.

        Examples:
            >>> ProcessingContext.build("thr33", "Be brief.").system_prompt[:40]
            'You are a professional photographer who '

        """
        return cls(
            trigger_word=trigger_word,
            system_prompt=system_prompt_template.format(trigger=trigger_word),
            user_prompt=user_prompt,
        )


class ErrorKind(StrEnum):
    """Closed set of item-scoped failure kinds."""

    IO = "io"
    DESCRIPTION = "description"
    INTERNAL = "internal"


class TaskOutcome(BaseModel):
    """Settled result of one item: the files written, or why it failed."""

    model_config = ConfigDict(frozen=True)

    image_name: str
    written: tuple[Path, ...] = ()
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, image_name: str, *written: Path) -> "TaskOutcome":
        return cls(image_name=image_name, written=written)

    @classmethod
    def failure(cls, image_name: str, kind: ErrorKind, error: str) -> "TaskOutcome":
        return cls(image_name=image_name, error_kind=kind, error=error)


class BatchResult(BaseModel):
    """Order-independent aggregate of a batch run."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    successes: int = 0
    failures: list[TaskOutcome] = Field(default_factory=list)
    archive_path: Path | None = None
    archive_error: str | None = None

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        """True when every item succeeded and archival (if attempted) did not fail."""
        return not self.failures and self.archive_error is None

    @classmethod
    def from_outcomes(cls, outcomes: list[TaskOutcome]) -> "BatchResult":
        failures = [outcome for outcome in outcomes if not outcome.ok]
        return cls(
            total=len(outcomes),
            successes=len(outcomes) - len(failures),
            failures=failures,
        )
