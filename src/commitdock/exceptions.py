"""Custom exceptions for commitdock.

Every pipeline stage raises a subclass of :class:`PipelineError` tagged with
the stage it came from. Any of them is fatal to the run.
"""

from typing import Optional


class CommitdockError(Exception):
    """Base class for all commitdock errors."""


class ConfigurationError(CommitdockError):
    """Raised when build settings are missing or invalid."""


class ProgressDecodeError(ValueError):
    """Raised when a line of a daemon response stream is not a JSON object."""

    def __init__(self, line: bytes, reason: str):
        self.line = line
        preview = line[:120].decode("utf-8", errors="replace")
        super().__init__(f"malformed progress line ({reason}): {preview!r}")


class PipelineError(CommitdockError):
    """A fatal error raised by one stage of the build pipeline.

    Args:
        message: Human-readable description of what failed.
        repository: Source repository being built, when known.
        commit: Commit being built, when known.
        reference: Full ``name:tag`` image reference involved, when known.
    """

    stage = "pipeline"

    def __init__(
        self,
        message: str,
        *,
        repository: Optional[str] = None,
        commit: Optional[str] = None,
        reference: Optional[str] = None,
    ):
        self.message = message
        self.repository = repository
        self.commit = commit
        self.reference = reference
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.repository:
            context.append(f"repository: {self.repository}")
        if self.commit:
            context.append(f"commit: {self.commit}")
        if self.reference:
            context.append(f"image: {self.reference}")

        text = f"{self.stage} failed: {self.message}"
        if context:
            text = f"{text} ({', '.join(context)})"
        return text


class FetchError(PipelineError):
    """Remote unreachable, credentials rejected, or commit not found."""

    stage = "fetch"


class ArchiveError(PipelineError):
    """A file in the source tree could not be opened, statted or read."""

    stage = "archive"


class BuildError(PipelineError):
    """The daemon rejected the build or its log stream was malformed."""

    stage = "build"


class PushError(PipelineError):
    """The registry rejected a push, either via transport or in-stream."""

    stage = "push"


class DeadlineExceeded(PipelineError):
    """The run's shared time budget elapsed during a blocking call.

    ``during`` names the stage that was running when the budget ran out; it
    also becomes the error's ``stage``.
    """

    def __init__(self, during: str, timeout: Optional[float] = None, **context):
        self.stage = during
        self.during = during
        self.timeout = timeout
        if timeout is not None:
            message = f"deadline of {timeout:g}s exceeded"
        else:
            message = "deadline exceeded"
        super().__init__(message, **context)
