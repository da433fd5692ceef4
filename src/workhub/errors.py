"""Error taxonomy for workspace coordination.

Every error raised by the hub carries an ErrorKind so callers (the HTTP
layer, tests, scripts) can decide whether a retry is safe:

- NOT_FOUND: the review request or session does not exist
- CONFLICT: a clone directory already exists where a fresh one is expected
- VALIDATION: malformed input, rejected before any external call
- TRANSIENT_EXTERNAL: an external tool or API failed

Workflow steps attach the failing stage to the error so the message reads
"<stage> failed: <message>".
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Category of a hub error."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    TRANSIENT_EXTERNAL = "transient_external"


class WorkspaceHubError(Exception):
    """Base class for all hub errors.

    Attributes:
        message: Human-readable error description.
        stage: Workflow step that failed, once known.
        result: Partial WorkflowResult attached by the orchestrator.
    """

    kind: ErrorKind = ErrorKind.TRANSIENT_EXTERNAL

    def __init__(self, message: str, stage: Optional[str] = None):
        self.message = message
        self.stage = stage
        self.result: Any = None
        super().__init__(message)

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage} failed: {self.message}"
        return self.message


class NotFoundError(WorkspaceHubError):
    """Raised when a review request or session does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(WorkspaceHubError):
    """Raised when a clone directory already exists at the target path."""

    kind = ErrorKind.CONFLICT


class InputValidationError(WorkspaceHubError):
    """Raised for malformed input before any external call is made."""

    kind = ErrorKind.VALIDATION


class RemoteURLError(WorkspaceHubError):
    """Raised when a git remote URL does not match a known hosting pattern.

    Attributes:
        remote: The URL that failed to parse.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, remote: str):
        self.remote = remote
        super().__init__(f"Unrecognized git remote URL: {remote!r}")


class ExternalServiceError(WorkspaceHubError):
    """Raised when an external tool or API call fails."""

    kind = ErrorKind.TRANSIENT_EXTERNAL


class CommandError(ExternalServiceError):
    """Raised when a subprocess exits non-zero, times out or cannot start.

    Attributes:
        command: The argv that was executed.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stderr: Captured standard error.
    """

    def __init__(
        self,
        command: list[str],
        message: str,
        exit_code: int = -1,
        stderr: str = "",
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"{' '.join(command[:3])}: {message}")


class ReviewSystemError(ExternalServiceError):
    """Raised when a review-system (GitHub API) request fails.

    Attributes:
        status_code: HTTP status code from the response.
        response_body: Response body from the API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(ReviewSystemError):
    """Raised when the GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class AssistantError(ExternalServiceError):
    """Raised when the assistant cannot produce usable metadata."""
