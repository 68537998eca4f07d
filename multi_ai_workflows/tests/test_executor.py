"""Tests for the workflow executor, step retries and the registry."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from multi_ai_workflows.core.errors import (
    BackendExecutionError,
    BackendUnavailableError,
    FallbackExhaustedError,
    InvalidRequestError,
)
from multi_ai_workflows.workflows import get_workflow, list_workflows
from multi_ai_workflows.workflows.context import WorkflowContext
from multi_ai_workflows.workflows.executor import WorkflowDefinition, WorkflowParams
from multi_ai_workflows.workflows.permissions import AutonomyLevel, Operation, PermissionDeniedError


class EchoParams(WorkflowParams):
    message: str


def make_definition(run) -> WorkflowDefinition:
    return WorkflowDefinition(name="echo", description="test workflow", params_model=EchoParams, run=run)


class TestRegistry:
    def test_builtin_workflows_registered(self):
        names = [d.name for d in list_workflows()]
        assert {
            "bug-hunt", "feature-design", "parallel-review", "pre-commit-validate", "validate-last-commit",
        } <= set(names)

    def test_unknown_workflow(self):
        with pytest.raises(InvalidRequestError, match="Unknown workflow: nope"):
            get_workflow("nope")


class TestExecute:
    @pytest.mark.asyncio
    async def test_runs_with_explicit_context_and_clears_it(self, executor):
        seen: dict = {}

        async def run(params, ctx, services):
            ctx.set("message", params.message)
            seen["ctx"] = ctx
            seen["level"] = services.permissions.level
            return f"echo: {params.message}"

        result = await executor.execute(make_definition(run), {"message": "hi"})

        assert result == "echo: hi"
        assert isinstance(seen["ctx"], WorkflowContext)
        assert len(seen["ctx"]) == 0
        assert seen["level"] == AutonomyLevel.READ_ONLY

    @pytest.mark.asyncio
    async def test_invalid_params(self, executor):
        run = AsyncMock()
        with pytest.raises(InvalidRequestError, match="Invalid parameters for echo"):
            await executor.execute(make_definition(run), {})
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_autonomy_level_param(self, executor):
        async def run(params, ctx, services):
            return services.autonomy_level

        result = await executor.execute(make_definition(run), {"message": "x", "autonomy_level": "medium"})
        assert result == "medium"

    @pytest.mark.asyncio
    async def test_error_clears_context_and_is_audited(self, executor, audit):
        seen: dict = {}

        async def run(params, ctx, services):
            seen["ctx"] = ctx
            ctx.set("partial", True)
            raise BackendUnavailableError("gemini")

        with pytest.raises(BackendUnavailableError):
            await executor.execute(make_definition(run), {"message": "x"})

        assert len(seen["ctx"]) == 0
        operations = [e["operation"] for e in audit.read_entries()]
        assert operations == ["echo_start", "echo_failed"]

    @pytest.mark.asyncio
    async def test_success_is_audited(self, executor, audit):
        async def run(params, ctx, services):
            return "done"

        await executor.execute(make_definition(run), {"message": "x"})
        assert [e["operation"] for e in audit.read_entries()] == ["echo_start", "echo_complete"]


class TestStepRetries:
    @pytest.mark.asyncio
    async def test_transient_failure_rolls_back_and_retries(self, executor):
        attempts: list[list] = []

        async def run(params, ctx, services):
            ctx.append("log", "before")

            async def flaky():
                attempts.append(ctx.get_all("log"))
                ctx.append("log", "partial")
                if len(attempts) == 1:
                    raise BackendExecutionError("gemini", "exit 1")
                return "ok"

            result = await services.step(ctx, "analyze", flaky)
            return f"{result} {ctx.get_all('log')} {ctx.get_all('completed_steps')}"

        result = await executor.execute(make_definition(run), {"message": "x"})

        # Second attempt saw the rolled-back state, not the partial write
        assert attempts == [["before"], ["before"]]
        assert result == "ok ['before', 'partial'] ['analyze']"

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, executor):
        fn = AsyncMock(side_effect=BackendExecutionError("droid", "boom"))

        async def run(params, ctx, services):
            ctx.set("k", 1)
            try:
                return await services.step(ctx, "plan", fn, attempts=3)
            finally:
                assert ctx.get("k") == 1

        with pytest.raises(BackendExecutionError, match="boom"):
            await executor.execute(make_definition(run), {"message": "x"})
        assert fn.await_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        BackendUnavailableError("gemini"),
        InvalidRequestError("bad"),
        PermissionDeniedError(Operation.WRITE_FILE, AutonomyLevel.READ_ONLY),
        FallbackExhaustedError("gemini", "Quota exceeded", "rate limit reached"),
        BackendExecutionError("cursor", "Quota exceeded for this month"),
    ])
    async def test_non_transient_errors_not_retried(self, executor, error):
        fn = AsyncMock(side_effect=error)

        async def run(params, ctx, services):
            return await services.step(ctx, "step", fn)

        with pytest.raises(type(error)):
            await executor.execute(make_definition(run), {"message": "x"})
        assert fn.await_count == 1


class TestServicesFileAccess:
    @pytest.mark.asyncio
    async def test_read_files_skips_missing(self, executor, temp_project_dir):
        (temp_project_dir / "a.py").write_text("x = 1\n")

        async def run(params, ctx, services):
            files = await services.read_files(["a.py", "missing.py"])
            return repr(files)

        assert await executor.execute(make_definition(run), {"message": "x"}) == "[('a.py', 'x = 1\\n')]"

    @pytest.mark.asyncio
    async def test_write_needs_low_autonomy(self, executor, temp_project_dir):
        async def run(params, ctx, services):
            await services.write_report("out/report.md", "# Report")
            return "written"

        with pytest.raises(PermissionDeniedError):
            await executor.execute(make_definition(run), {"message": "x"})

        result = await executor.execute(make_definition(run), {"message": "x", "autonomy_level": "low"})
        assert result == "written"
        assert (temp_project_dir / "out" / "report.md").read_text() == "# Report"

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, executor):
        async def run(params, ctx, services):
            return repr(await services.read_files(["../../etc/passwd"]))

        with pytest.raises(InvalidRequestError, match="escapes project root"):
            await executor.execute(make_definition(run), {"message": "x"})
