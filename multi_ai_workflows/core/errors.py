"""Error taxonomy for backend dispatch and workflow execution."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for failures raised by the backend dispatcher."""


class InvalidRequestError(DispatchError):
    """Request rejected before any external effect (never retried)."""


class BackendUnavailableError(DispatchError):
    """Backend circuit is open; no process was started."""

    def __init__(self, backend: str) -> None:
        super().__init__(f"Backend {backend} is unavailable (circuit open)")
        self.backend = backend


class BackendExecutionError(DispatchError):
    """External backend process failed, timed out or exited non-zero."""

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(message)
        self.backend = backend


class GitError(DispatchError):
    """A git command failed or the project is not a git repository."""


class FallbackExhaustedError(BackendExecutionError):
    """Both the primary and the fallback model failed."""

    def __init__(
        self,
        backend: str,
        primary_error: str,
        fallback_error: str,
    ) -> None:
        super().__init__(
            backend,
            "Both primary and fallback models failed:\n"
            f"Primary: {primary_error}\n"
            f"Fallback: {fallback_error}",
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class CommandExecutionError(Exception):
    """Raised by the process runner on spawn failure or non-zero exit."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class CommandTimeoutError(CommandExecutionError):
    """Process exceeded its timeout and was killed."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Timeout after {timeout} seconds")
        self.timeout = timeout


class ContextTypeError(TypeError):
    """Workflow context value has the wrong shape for the operation."""
