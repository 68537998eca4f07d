"""Workflow executor and registry.

A workflow is a named, schema-validated coroutine:

    async def run(params, ctx: WorkflowContext, services: WorkflowServices) -> str

The executor validates params, builds a fresh WorkflowContext and a per-run
PermissionManager, runs the workflow and always clears the context afterwards.
Steps that call backends go through WorkflowServices.step(), which
checkpoints the context and, on a transient backend failure, rolls back and
retries with exponential backoff.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar
import logging

from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from multi_ai_workflows.backends import ExecutionRequest
from multi_ai_workflows.config.settings import Settings, get_settings
from multi_ai_workflows.core.dispatcher import BackendDispatcher, is_quota_error
from multi_ai_workflows.core.errors import BackendExecutionError, FallbackExhaustedError, InvalidRequestError
from multi_ai_workflows.core.process_runner import ProgressCallback
from multi_ai_workflows.utils.sanitization import PromptSanitizer
from multi_ai_workflows.workflows.audit import AuditTrail
from multi_ai_workflows.workflows.context import WorkflowContext
from multi_ai_workflows.workflows.git import GitHelper
from multi_ai_workflows.workflows.model_selector import BackendSelector
from multi_ai_workflows.workflows.permissions import (
    AutonomyLevel,
    ConfirmationCallback,
    Operation,
    PermissionManager,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_failure(error: BaseException) -> bool:
    """
    Whether a failed step is worth running again.

    Quota failures already had their one model fallback inside the
    dispatcher, so neither they nor an exhausted fallback are retried.
    """
    if not isinstance(error, BackendExecutionError) or isinstance(error, FallbackExhaustedError):
        return False
    return not is_quota_error(str(error))


class WorkflowParams(BaseModel):
    """Base parameters shared by every workflow."""

    autonomy_level: AutonomyLevel | None = None


@dataclass
class WorkflowServices:
    """Collaborators handed to a workflow run, alongside its context."""

    dispatcher: BackendDispatcher
    permissions: PermissionManager
    audit: AuditTrail
    selector: BackendSelector
    settings: Settings
    project_root: Path
    on_progress: ProgressCallback | None = None
    sanitizer: PromptSanitizer = field(init=False)
    git: GitHelper = field(init=False)

    def __post_init__(self) -> None:
        self.sanitizer = PromptSanitizer(self.project_root)
        self.git = GitHelper(self.dispatcher.runner, self.permissions, self.project_root)

    @property
    def autonomy_level(self) -> str:
        return self.permissions.level.value

    def progress(self, message: str) -> None:
        """Send a status message to the progress callback, if any."""
        if self.on_progress is None:
            return
        try:
            self.on_progress(message)
        except Exception as e:
            logger.debug("Progress callback raised: %s", e)

    async def dispatch(self, request: ExecutionRequest) -> str:
        """Run one backend request with the run's progress callback."""
        if request.autonomy_level is None:
            request.autonomy_level = self.autonomy_level
        return await self.dispatcher.execute(request, self.on_progress)

    async def step(
        self,
        ctx: WorkflowContext,
        name: str,
        fn: Callable[[], Awaitable[T]],
        attempts: int | None = None,
    ) -> T:
        """
        Run one workflow step with checkpoint/rollback retries.

        The context is checkpointed before the step. When the step raises
        BackendExecutionError the context is rolled back to that checkpoint
        and, unless the failure was a quota error or an exhausted model
        fallback, the step is retried. Validation, permission and
        circuit-open errors propagate immediately.

        Args:
            ctx: The run's context.
            name: Step name (used for the checkpoint and logs).
            fn: Zero-argument coroutine function performing the step.
            attempts: Total attempts (defaults to settings).

        Returns:
            Whatever fn returns.
        """
        resilience = self.settings.resilience
        max_attempts = attempts or resilience.step_retry_attempts
        checkpoint = f"before:{name}"
        ctx.checkpoint(checkpoint)

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "Step %s failed (attempt %d/%d), retrying from checkpoint: %s",
                name,
                retry_state.attempt_number,
                max_attempts,
                retry_state.outcome.exception() if retry_state.outcome else "unknown",
            )
            self.progress(f"Retrying step {name}...")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_random_exponential(
                multiplier=resilience.step_retry_min_wait,
                max=resilience.step_retry_max_wait,
            ),
            retry=retry_if_exception(is_transient_failure),
            before_sleep=log_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                try:
                    result = await fn()
                except BackendExecutionError:
                    ctx.rollback(checkpoint)
                    raise

        ctx.append("completed_steps", name)
        return result

    async def read_files(self, paths: list[str]) -> list[tuple[str, str]]:
        """
        Read project files after a READ_FILE permission check.

        Missing or unreadable files are skipped with a warning.

        Returns:
            (path, content) pairs in input order.
        """
        if not paths:
            return []

        await self.permissions.request_permission(Operation.READ_FILE, ", ".join(paths))

        contents = []
        for path in paths:
            resolved = self.sanitizer.sanitize_file_path(path)
            if not resolved.is_file():
                logger.warning("Skipping missing file %s", path)
                continue
            try:
                contents.append((path, resolved.read_text(encoding="utf-8", errors="replace")))
            except OSError as e:
                logger.warning("Failed to read %s: %s", path, e)
        return contents

    async def write_report(self, path: str, report: str) -> Path:
        """Write a report after a WRITE_FILE permission check."""
        await self.permissions.request_permission(Operation.WRITE_FILE, path)
        resolved = self.sanitizer.sanitize_file_path(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(report, encoding="utf-8")
        logger.info("Report written to %s", resolved)
        return resolved


WorkflowRun = Callable[[Any, WorkflowContext, WorkflowServices], Awaitable[str]]


@dataclass(frozen=True)
class WorkflowDefinition:
    """A named workflow with its parameter schema."""

    name: str
    description: str
    params_model: type[WorkflowParams]
    run: WorkflowRun


_REGISTRY: dict[str, WorkflowDefinition] = {}


def register_workflow(definition: WorkflowDefinition) -> WorkflowDefinition:
    """Register a workflow by name (re-registering replaces it)."""
    _REGISTRY[definition.name] = definition
    return definition


def get_workflow(name: str) -> WorkflowDefinition:
    """
    Look up a registered workflow.

    Raises:
        InvalidRequestError: If no workflow has that name.
    """
    try:
        return _REGISTRY[name]
    except KeyError:
        raise InvalidRequestError(
            f"Unknown workflow: {name}. Available workflows: {', '.join(sorted(_REGISTRY))}"
        ) from None


def list_workflows() -> list[WorkflowDefinition]:
    return sorted(_REGISTRY.values(), key=lambda d: d.name)


class WorkflowExecutor:
    """Run registered workflows with an explicit per-run context."""

    def __init__(
        self,
        dispatcher: BackendDispatcher,
        settings: Settings | None = None,
        project_root: Path | None = None,
        audit: AuditTrail | None = None,
        confirmation_callback: ConfirmationCallback | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher
        self.project_root = (project_root or Path.cwd()).resolve()
        self.audit = audit or AuditTrail(self.settings.audit_path(self.project_root))
        self.confirmation_callback = confirmation_callback
        self.selector = BackendSelector(self.audit, self.settings.default_autonomy_level)

    async def execute(
        self,
        workflow: str | WorkflowDefinition,
        params: dict[str, Any] | WorkflowParams,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """
        Execute a workflow.

        Args:
            workflow: Registered name or definition.
            params: Raw parameters (validated against the workflow schema).
            on_progress: Receives status messages during the run.

        Returns:
            The workflow's markdown report.

        Raises:
            InvalidRequestError: Unknown workflow or invalid parameters.
        """
        definition = get_workflow(workflow) if isinstance(workflow, str) else workflow

        try:
            if isinstance(params, BaseModel):
                params = params.model_dump()
            validated = definition.params_model.model_validate(params)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid parameters for {definition.name}: {e}") from e

        level = validated.autonomy_level or AutonomyLevel(self.settings.default_autonomy_level)
        permissions = PermissionManager(level, self.confirmation_callback)
        ctx = WorkflowContext(workflow_name=definition.name)
        services = WorkflowServices(
            dispatcher=self.dispatcher,
            permissions=permissions,
            audit=self.audit,
            selector=self.selector,
            settings=self.settings,
            project_root=self.project_root,
            on_progress=on_progress,
        )

        logger.info("Starting workflow %s (%s, level %s)", definition.name, ctx.metadata.workflow_id, level.value)
        await self.audit.log(
            f"{definition.name}_start",
            level.value,
            {"workflow_id": ctx.metadata.workflow_id, "params": validated.model_dump(mode="json")},
        )

        try:
            result = await definition.run(validated, ctx, services)
        except Exception as e:
            logger.error("Context on error for %s: %s", definition.name, ctx.summary())
            await self.audit.log(
                f"{definition.name}_failed",
                level.value,
                {"workflow_id": ctx.metadata.workflow_id, "error": str(e)},
            )
            raise
        else:
            logger.info("Context summary for %s: %s", definition.name, ctx.summary())
            await self.audit.log(
                f"{definition.name}_complete",
                level.value,
                {"workflow_id": ctx.metadata.workflow_id, "steps": ctx.get_all("completed_steps")},
            )
            return result
        finally:
            ctx.clear()
