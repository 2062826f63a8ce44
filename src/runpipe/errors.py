"""
Error types for pipeline execution.

Errors fall into three groups with different handling:

- ConfigurationError: the token list can't describe a pipeline. Raised
  before any process exists, so nothing needs cleaning up.
- ResourceError: pipe or process creation failed. The whole pipeline is
  aborted.
- StageWaitError: bookkeeping for a single stage failed while collecting
  statuses. Reported for that stage; collection continues.
"""

from __future__ import annotations

__all__ = [
    "PipelineError",
    "ConfigurationError",
    "ConfigFileError",
    "NoStagesError",
    "EmptyStageError",
    "TrailingDelimiterError",
    "TooManyStagesError",
    "ResourceError",
    "PipeCreationError",
    "ForkError",
    "ExecError",
    "StageWaitError",
    "InvalidHandleError",
    "WaitError",
    "EndpointReleasedError",
]


class PipelineError(RuntimeError):
    """Base class for pipeline failures.

    Args:
        message: Human readable description
        stage: Index of the stage involved, if any
        cause: Underlying exception (not included in ``str()``)
    """

    exit_code = 1

    def __init__(
        self,
        message: str,
        stage: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        if self.stage is not None:
            return f"[stage {self.stage}] {self.message}"
        return self.message


class ConfigurationError(PipelineError):
    """The requested pipeline is malformed."""

    exit_code = 2


class ConfigFileError(ConfigurationError):
    """A runner configuration file could not be loaded."""


class NoStagesError(ConfigurationError):
    """No tokens were given at all."""

    def __init__(self, message: str = "Specify at least one program to run"):
        super().__init__(message)


class EmptyStageError(ConfigurationError):
    """Two delimiters (or a leading delimiter) enclose nothing."""

    def __init__(self, position: int):
        super().__init__("Empty stage", stage=position)
        self.position = position


class TrailingDelimiterError(ConfigurationError):
    """The token list ends with the delimiter."""

    def __init__(self, delimiter: str):
        super().__init__(f"Last stage is empty (trailing {delimiter!r})")
        self.delimiter = delimiter


class TooManyStagesError(ConfigurationError):
    def __init__(self, limit: int):
        super().__init__(f"Too many stages (maximum is {limit})")
        self.limit = limit


class ResourceError(PipelineError):
    """The OS refused a pipe or a process."""


class PipeCreationError(ResourceError):
    pass


class ForkError(ResourceError):
    pass


class ExecError(PipelineError):
    """The stage's program could not be executed. Local to that stage.

    ``status_code`` is the exit status a forked child would have reported
    for the same failure (127 not found, 126 otherwise).
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        stage: int | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, stage=stage, cause=cause)
        self.status_code = status_code


class StageWaitError(PipelineError):
    """Collecting one stage's status failed."""


class InvalidHandleError(StageWaitError):
    pass


class WaitError(StageWaitError):
    pass


class EndpointReleasedError(PipelineError):
    """A pipe endpoint was used after its ownership moved elsewhere."""
