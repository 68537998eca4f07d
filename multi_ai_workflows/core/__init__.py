"""Core backend execution and resilience module."""

from multi_ai_workflows.core.errors import (
    BackendExecutionError,
    BackendUnavailableError,
    CommandExecutionError,
    CommandTimeoutError,
    ContextTypeError,
    DispatchError,
    FallbackExhaustedError,
    GitError,
    InvalidRequestError,
)
from multi_ai_workflows.core.circuit_breaker import BackendState, CircuitBreaker, CircuitState
from multi_ai_workflows.core.process_runner import ProcessRunner, resolve_executable
from multi_ai_workflows.core.dispatcher import BackendDispatcher, is_quota_error

__all__ = [
    # Errors
    "BackendExecutionError",
    "BackendUnavailableError",
    "CommandExecutionError",
    "CommandTimeoutError",
    "ContextTypeError",
    "DispatchError",
    "FallbackExhaustedError",
    "GitError",
    "InvalidRequestError",
    # Circuit breaker
    "BackendState",
    "CircuitBreaker",
    "CircuitState",
    # Execution
    "BackendDispatcher",
    "ProcessRunner",
    "resolve_executable",
    "is_quota_error",
]
