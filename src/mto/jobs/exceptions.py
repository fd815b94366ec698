"""Error taxonomy for operation units, workflows and the scheduler.

Every error raised or reported by mto derives from MTOError and carries a
stable ErrorCode, so callers can branch on the category without matching
message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable identifiers for each error category."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNIT_STATE_ERROR = "UNIT_STATE_ERROR"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    PROBE_FAILED = "PROBE_FAILED"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NO_STREAMS = "NO_STREAMS"
    INVALID_MEDIA = "INVALID_MEDIA"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    PROCESS_FAILED = "PROCESS_FAILED"
    JOB_TIMEOUT = "JOB_TIMEOUT"
    JOB_FAILED = "JOB_FAILED"
    PIPELINE_RUNNING = "PIPELINE_RUNNING"
    PIPELINE_ABORTED = "PIPELINE_ABORTED"
    PIPELINE_ERROR = "PIPELINE_ERROR"


class MTOError(Exception):
    """Base exception for all mto errors.

    Attributes:
        code: Category of the error.
        kind: Operation kind value the error relates to, if any.
    """

    code: ErrorCode = ErrorCode.PIPELINE_ERROR

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        self.message = message
        self.kind = kind
        if code is not None:
            self.code = code
        super().__init__(message)


class ValidationError(MTOError):
    """Bad parameters, missing required fields or API misuse.

    Always raised synchronously at the call that caused it.
    """

    code = ErrorCode.VALIDATION_ERROR


class UnitStateError(ValidationError):
    """Raised when a unit is used out of order (e.g. started twice)."""

    code = ErrorCode.UNIT_STATE_ERROR


class WorkflowRunningError(ValidationError):
    """Raised when a workflow is mutated or re-run while it is running."""

    code = ErrorCode.PIPELINE_RUNNING


class ToolNotFoundError(MTOError):
    """The external binary could not be found or launched.

    Attributes:
        tool: Name or path of the missing binary.
    """

    code = ErrorCode.TOOL_NOT_FOUND

    def __init__(self, tool: str, message: str | None = None) -> None:
        self.tool = tool
        super().__init__(message or f"Required tool not available: {tool}")


class ProbeError(MTOError):
    """The duration probe failed for an input."""

    code = ErrorCode.PROBE_FAILED

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Could not probe duration of {path}: {detail}")


class MediaFileNotFoundError(MTOError):
    """An input or auxiliary media file does not exist."""

    code = ErrorCode.FILE_NOT_FOUND


class PermissionDeniedError(MTOError):
    """A file could not be read or written due to permissions."""

    code = ErrorCode.PERMISSION_DENIED


class NoCompatibleStreamError(MTOError):
    """The input has no stream the operation can work with."""

    code = ErrorCode.NO_STREAMS


class InvalidMediaError(MTOError):
    """The input is corrupt or not a decodable media file."""

    code = ErrorCode.INVALID_MEDIA


class ConversionFailedError(MTOError):
    """ffmpeg could not perform the requested conversion."""

    code = ErrorCode.CONVERSION_FAILED


class ProcessExitError(MTOError):
    """The external process exited with a nonzero code.

    Attributes:
        exit_code: Process return code.
        diagnostics: Trailing diagnostic (stderr) lines of the process.
    """

    code = ErrorCode.PROCESS_FAILED

    def __init__(
        self,
        exit_code: int | None,
        diagnostics: list[str] | None = None,
        *,
        kind: str | None = None,
        message: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.diagnostics = list(diagnostics or [])
        super().__init__(
            message or f"ffmpeg exited with code {exit_code}",
            kind=kind,
        )


class StepTimeoutError(MTOError):
    """A workflow step did not finish within its time limit."""

    code = ErrorCode.JOB_TIMEOUT

    def __init__(self, kind: str, step_number: int, timeout: float) -> None:
        self.step_number = step_number
        self.timeout = timeout
        super().__init__(
            f"Step {step_number} ({kind}) timed out after {timeout:g} seconds",
            kind=kind,
        )


class UnitTimeoutError(MTOError):
    """A scheduled unit did not finish within its time limit."""

    code = ErrorCode.JOB_TIMEOUT

    def __init__(self, kind: str, timeout: float | None = None) -> None:
        self.timeout = timeout
        limit = f" after {timeout:g} seconds" if timeout is not None else ""
        super().__init__(f"{kind} timed out{limit}", kind=kind)


class WorkflowAbortedError(MTOError):
    """The workflow was stopped by abort()."""

    code = ErrorCode.PIPELINE_ABORTED

    def __init__(self) -> None:
        super().__init__("Pipeline aborted by user")


class WorkflowError(MTOError):
    """Generic workflow failure that fits no other category."""

    code = ErrorCode.PIPELINE_ERROR
