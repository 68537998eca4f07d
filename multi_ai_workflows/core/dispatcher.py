"""Backend dispatcher: validation, circuit breaker and model fallback.

Every external AI call goes through BackendDispatcher.execute(), which:

1. Validates the backend name and prompt (no process on failure).
2. Consults the circuit breaker for that backend.
3. Builds argv through the backend adapter and runs it.
4. Reports the outcome to the breaker.
5. On a quota / rate-limit failure of a primary model, retries exactly once
   with the backend's fallback model, unless that failure opened the circuit.
6. A call that ends without an outcome (cancelled, unexpected error) hands
   a half-open trial back to the breaker.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
import logging
import time

from multi_ai_workflows.backends import ADAPTER_CLASSES, BackendAdapter, ExecutionRequest, create_adapters
from multi_ai_workflows.config.settings import Settings, get_settings
from multi_ai_workflows.core.circuit_breaker import CircuitBreaker
from multi_ai_workflows.core.errors import (
    BackendExecutionError,
    BackendUnavailableError,
    CommandExecutionError,
    FallbackExhaustedError,
    InvalidRequestError,
)
from multi_ai_workflows.core.process_runner import ProcessRunner, ProgressCallback
from multi_ai_workflows.utils.sanitization import PromptSanitizer

logger = logging.getLogger(__name__)

# Progress status messages
STATUS_STARTING = "Starting {backend} analysis with {model}..."
STATUS_COMPLETED = "{backend} completed successfully"
STATUS_FAILED = "{backend} failed: {error}"
STATUS_SWITCHING = "Quota exceeded on {model}, switching to {fallback}..."

# Substrings that identify a quota or rate-limit failure
QUOTA_ERROR_MARKERS = ("quota", "rate limit")


def is_quota_error(message: str) -> bool:
    """
    Check whether a backend error message signals a quota/rate-limit failure.

    Only these failures trigger a model fallback. The check is deliberately
    narrow: a case-insensitive match on "quota" or "rate limit".
    """
    lowered = message.lower()
    return any(marker in lowered for marker in QUOTA_ERROR_MARKERS)


class BackendDispatcher:
    """
    Route execution requests to backend CLIs.

    Thread-safe with respect to the breaker; a semaphore caps the number of
    backend processes running at once.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        runner: ProcessRunner | None = None,
        settings: Settings | None = None,
        project_root: Path | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.breaker = breaker
        self.runner = runner or ProcessRunner(self.settings.resilience.backend_timeout)
        self.adapters: dict[str, BackendAdapter] = create_adapters(self.settings)
        self.sanitizer = PromptSanitizer(project_root)
        self._semaphore = asyncio.Semaphore(self.settings.resilience.max_concurrent_backends)

    async def execute(
        self,
        request: ExecutionRequest,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """
        Execute a request against its backend.

        Args:
            request: The execution request.
            on_progress: Receives status messages and output chunks.

        Returns:
            Raw stdout of the backend (fallback output when the fallback ran).

        Raises:
            InvalidRequestError: Unknown backend or empty prompt.
            BackendUnavailableError: Circuit is open for the backend.
            FallbackExhaustedError: Primary and fallback models both failed.
            BackendExecutionError: Any other backend failure.
        """
        adapter = self.adapters.get(request.backend)
        if adapter is None:
            raise InvalidRequestError(
                f"Unsupported backend: {request.backend}. "
                f"Supported backends: {', '.join(ADAPTER_CLASSES)}"
            )
        prompt = self.sanitizer.validate_prompt(request.prompt)

        backend = adapter.name
        if not self.breaker.is_available(backend):
            logger.warning("Circuit open for %s, rejecting request", backend)
            raise BackendUnavailableError(backend)

        model = adapter.effective_model(request)
        args = adapter.build_args(_with_prompt(request, prompt), model)

        self._notify(on_progress, STATUS_STARTING.format(backend=backend, model=model or "default model"))

        try:
            output = await self._run(adapter, args, on_progress)
        except CommandExecutionError as e:
            self.breaker.on_failure(backend)
            primary_error = str(e)

            fallback = adapter.fallback_model
            if is_quota_error(primary_error) and fallback and model == adapter.primary_model:
                if self.breaker.is_available(backend):
                    return await self._execute_fallback(
                        adapter, request, prompt, model, fallback, primary_error, on_progress
                    )
                logger.warning("Circuit open for %s, skipping fallback to %s", backend, fallback)

            self._notify(on_progress, STATUS_FAILED.format(backend=backend, error=primary_error))
            raise BackendExecutionError(backend, primary_error) from e
        except BaseException:
            self.breaker.release(backend)
            raise

        self.breaker.on_success(backend)
        self._notify(on_progress, STATUS_COMPLETED.format(backend=backend))
        return output

    async def _execute_fallback(
        self,
        adapter: BackendAdapter,
        request: ExecutionRequest,
        prompt: str,
        model: str | None,
        fallback: str,
        primary_error: str,
        on_progress: ProgressCallback | None,
    ) -> str:
        """Retry once with the fallback model after a quota failure."""
        backend = adapter.name
        logger.warning("%s quota exceeded on %s, falling back to %s", backend, model, fallback)
        self._notify(on_progress, STATUS_SWITCHING.format(model=model, fallback=fallback))

        args = adapter.build_args(_with_prompt(request, prompt), fallback)
        try:
            output = await self._run(adapter, args, on_progress)
        except CommandExecutionError as e:
            self.breaker.on_failure(backend)
            self._notify(on_progress, STATUS_FAILED.format(backend=backend, error=str(e)))
            raise FallbackExhaustedError(backend, primary_error, str(e)) from e
        except BaseException:
            self.breaker.release(backend)
            raise

        self.breaker.on_success(backend)
        self._notify(on_progress, STATUS_COMPLETED.format(backend=backend))
        return output

    async def _run(
        self,
        adapter: BackendAdapter,
        args: list[str],
        on_progress: ProgressCallback | None,
    ) -> str:
        start_time = time.monotonic()
        async with self._semaphore:
            logger.info("Invoking %s (%s)", adapter.name, adapter.executable)
            output = await self.runner.run(
                adapter.executable,
                args,
                timeout=self.settings.resilience.backend_timeout,
                on_progress=on_progress,
            )
        logger.info("%s responded in %.1fs", adapter.name, time.monotonic() - start_time)
        return output

    @staticmethod
    def _notify(on_progress: ProgressCallback | None, message: str) -> None:
        if on_progress is None:
            return
        try:
            on_progress(message)
        except Exception as e:
            logger.debug("Progress callback raised: %s", e)


def _with_prompt(request: ExecutionRequest, prompt: str) -> ExecutionRequest:
    """Copy of request carrying the validated prompt."""
    if prompt == request.prompt:
        return request
    return replace(request, prompt=prompt)
