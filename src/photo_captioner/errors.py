"""Exception hierarchy for Photo Captioner."""


class CaptionerError(Exception):
    """Base exception for all Photo Captioner errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigError(CaptionerError):
    """Configuration, discovery or shared precondition failed. Aborts the batch."""


class DescriptionError(CaptionerError):
    """The description service failed, timed out or returned nothing usable."""


class ArchiveError(CaptionerError):
    """Compressing the output directory failed."""
