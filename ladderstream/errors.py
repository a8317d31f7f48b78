"""
Exception hierarchy for LadderStream.

Fatal errors (ToolUnavailableError, ProbeError, ManifestError) end a job
with status ``error``. EncodeError is recorded per stage and only becomes
fatal when no variant at all could be encoded.
"""

from typing import Optional


class LadderStreamError(Exception):
    """Base class for all LadderStream errors."""


class ToolUnavailableError(LadderStreamError):
    """The external media tool binary could not be located or executed."""

    def __init__(self, tool: str, detail: Optional[str] = None):
        self.tool = tool
        self.detail = detail
        message = f"{tool} is not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProbeError(LadderStreamError):
    """The source could not be inspected (unreadable, corrupt, no video)."""

    def __init__(
        self,
        message: str,
        stderr: Optional[str] = None,
        exit_code: Optional[int] = None
    ):
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(message)


class EncodeError(LadderStreamError):
    """A single ffmpeg invocation failed."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr_tail: str = "",
        description: Optional[str] = None
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.description = description
        super().__init__(message)

    def __str__(self) -> str:
        text = super().__str__()
        if self.description and self.description != "Unknown error":
            text = f"{text} ({self.description})"
        return text


class ManifestError(LadderStreamError):
    """No variant succeeded, so there is nothing to put in a manifest."""


class DuplicateJobError(LadderStreamError):
    """A job with this id is already queued or processing."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already active")


class JobCancelledError(LadderStreamError):
    """The job was cancelled by request before it started."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")


class PipelineError(LadderStreamError):
    """The job ended in status ``error``."""

    def __init__(self, job_id: str, detail: Optional[str]):
        self.job_id = job_id
        self.detail = detail
        super().__init__(f"Job {job_id} failed: {detail or 'unknown error'}")
