"""End-to-end tests for the built-in workflows with a mocked process runner."""

from __future__ import annotations

import asyncio

import pytest

from multi_ai_workflows.core.circuit_breaker import CircuitState
from multi_ai_workflows.core.errors import (
    CommandExecutionError,
    CommandTimeoutError,
    FallbackExhaustedError,
    GitError,
    InvalidRequestError,
)
from multi_ai_workflows.workflows.bug_hunt import extract_file_paths, find_related_files, has_issue
from multi_ai_workflows.workflows.commit_validation import combine_verdicts, parse_verdict
from multi_ai_workflows.workflows.permissions import PermissionDeniedError


def scripted_runner(responses: dict[str, object], calls: list[tuple[str, list[str]]]):
    """Runner side effect answering per executable; exceptions are raised."""

    async def run(executable, args, **kwargs):
        calls.append((executable, args))
        await asyncio.sleep(0)
        response = responses[executable]
        if isinstance(response, BaseException):
            raise response
        return response

    return run


class TestBugHuntHelpers:
    def test_has_issue(self):
        assert has_issue("A NullPointer EXCEPTION is thrown")
        assert not has_issue("Everything looks fine.")

    def test_extract_file_paths_keeps_existing_only(self, project_with_sources):
        response = "1. app/service.py\n2. app/ghost.py\n3. `app/models.py`\n1. app/service.py"
        assert extract_file_paths(response, project_with_sources) == ["app/service.py", "app/models.py"]

    def test_find_related_files_follows_relative_imports(self, project_with_sources):
        content = (project_with_sources / "app" / "service.py").read_text()
        related = find_related_files("app/service.py", content, project_with_sources)
        assert related == ["app/models.py", "app/utils/__init__.py", "app/utils/helpers.py"]

    def test_find_related_files_script_imports(self, temp_project_dir):
        (temp_project_dir / "src").mkdir()
        (temp_project_dir / "src" / "util.ts").write_text("export const x = 1;")
        content = "import { x } from './util';\nimport fs from 'fs';"
        assert find_related_files("src/index.ts", content, temp_project_dir) == ["src/util.ts"]


class TestBugHunt:
    @pytest.mark.asyncio
    async def test_one_branch_timing_out_degrades_report(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {
                "gemini": "Root cause: missing null check in save()",
                "cursor-agent": "Hypothesis 1: user.id is None",
                "droid": CommandTimeoutError(600),
            },
            calls,
        )

        report = await executor.execute(
            "bug-hunt",
            {"symptoms": "Crash when saving a user", "suspected_files": ["app/service.py"]},
        )

        assert sorted(executable for executable, _ in calls) == ["cursor-agent", "droid", "gemini"]
        assert report.startswith("# Bug Hunt")
        assert "## Symptoms" in report
        assert "Crash when saving a user" in report
        assert "- app/service.py" in report
        assert "## Root Cause Analysis (Gemini)" in report
        assert "missing null check" in report
        assert "## Hypothesis Exploration (Cursor Agent)" in report
        assert "user.id is None" in report
        assert "## Autonomous Fix Plan (Droid)" in report
        assert "Droid analysis failed:** Timeout after 600 seconds" in report
        # Gemini reported an issue, so imports were followed
        assert "app/models.py" in report
        assert "- **Related Files**: Yes" in report

    @pytest.mark.asyncio
    async def test_all_branches_failing_still_reports(self, executor, runner, project_with_sources):
        runner.run.side_effect = CommandExecutionError("cli missing")

        report = await executor.execute(
            "bug-hunt",
            {"symptoms": "Crash", "suspected_files": ["app/models.py"]},
        )

        assert report.count("analysis failed:** cli missing") == 3

    @pytest.mark.asyncio
    async def test_failed_root_cause_is_not_a_detected_issue(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {
                "gemini": CommandExecutionError("cli missing"),
                "cursor-agent": "All good here.",
                "droid": "All good here.",
            },
            calls,
        )

        report = await executor.execute(
            "bug-hunt",
            {"symptoms": "Crash when saving a user", "suspected_files": ["app/service.py"]},
        )

        assert "**Gemini analysis failed:** cli missing" in report
        assert "- **Problematic Files**: 0" in report
        assert "- **Related Files**: No" in report
        assert "Related Files Impact" not in report

    @pytest.mark.asyncio
    async def test_quota_failure_uses_one_fallback_only(self, executor, runner, breaker):
        runner.run.side_effect = CommandExecutionError("Quota exceeded")

        with pytest.raises(FallbackExhaustedError):
            await executor.execute("bug-hunt", {"symptoms": "Wrong user id"})

        # gemini argv starts with "-m MODEL"
        models = [call.args[1][1] for call in runner.run.call_args_list]
        assert models == ["gemini-3-pro-preview", "gemini-3-flash-preview"]
        state = breaker.get_state("gemini")
        assert state.failures == 2
        assert state.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_discovers_files_with_gemini(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {"gemini": "app/models.py", "cursor-agent": "ok", "droid": "ok"},
            calls,
        )

        report = await executor.execute("bug-hunt", {"symptoms": "Wrong user id"})

        assert calls[0][0] == "gemini"
        assert "Given these bug symptoms" in calls[0][1][-1]
        assert "- app/models.py" in report

    @pytest.mark.asyncio
    async def test_no_files_discovered(self, executor, runner):
        runner.run.return_value = "I could not find anything relevant."

        report = await executor.execute("bug-hunt", {"symptoms": "Something odd"})

        assert "Unable to identify relevant files" in report
        assert runner.run.call_count == 1

    @pytest.mark.asyncio
    async def test_backend_overrides(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner({"cursor-agent": "hypotheses"}, calls)

        report = await executor.execute(
            "bug-hunt",
            {"symptoms": "Crash", "suspected_files": ["app/models.py"], "backend_overrides": ["cursor"]},
        )

        assert [executable for executable, _ in calls] == ["cursor-agent"]
        assert "Gemini analysis disabled" in report
        assert "Autonomous Fix Plan" not in report

    @pytest.mark.asyncio
    async def test_attachments_and_droid_flags(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {"gemini": "fine", "cursor-agent": "ok", "droid": "plan"}, calls
        )

        await executor.execute(
            "bug-hunt",
            {"symptoms": "Crash", "suspected_files": ["app/models.py"], "attachments": ["err.log"]},
        )

        args = dict(calls)
        assert args["droid"][:3] == ["exec", "--auto", "medium"]
        assert "--file" in args["droid"] and "err.log" in args["droid"]
        assert args["cursor-agent"].count("--file") == 1

    @pytest.mark.asyncio
    async def test_output_file_requires_write_permission(self, executor, runner, project_with_sources):
        params = {"symptoms": "Crash", "suspected_files": ["app/models.py"], "output_file": "bug.md"}

        with pytest.raises(PermissionDeniedError):
            await executor.execute("bug-hunt", params)

        report = await executor.execute("bug-hunt", {**params, "autonomy_level": "low"})
        assert (project_with_sources / "bug.md").read_text() == report

    @pytest.mark.asyncio
    async def test_empty_symptoms_rejected(self, executor, runner):
        with pytest.raises(InvalidRequestError):
            await executor.execute("bug-hunt", {"symptoms": ""})
        runner.run.assert_not_called()


class TestFeatureDesign:
    @pytest.mark.asyncio
    async def test_architecture_then_parallel_plan(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {"gemini": "Architecture: add a queue", "droid": "Step 1", "cursor-agent": "Risk: ordering"},
            calls,
        )

        report = await executor.execute(
            "feature-design",
            {
                "feature_description": "Async user export",
                "target_files": ["app/service.py"],
                "constraints": ["No new dependencies"],
            },
        )

        assert calls[0][0] == "gemini"
        assert "No new dependencies" in calls[0][1][-1]
        assert "## Architecture (gemini)" in report
        assert "## Implementation Plan (Droid)" in report
        assert "## Risk Review (Cursor Agent)" in report
        # Later prompts build on the architecture
        droid_prompt = dict(calls)["droid"][-1]
        assert "Architecture: add a queue" in droid_prompt

    @pytest.mark.asyncio
    async def test_architecture_step_retried(self, executor, runner):
        attempts = {"gemini": 0}

        async def run(executable, args, **kwargs):
            if executable == "gemini":
                attempts["gemini"] += 1
                if attempts["gemini"] == 1:
                    raise CommandExecutionError("transient crash")
                return "Architecture v2"
            return "ok"

        runner.run.side_effect = run

        report = await executor.execute("feature-design", {"feature_description": "Export"})

        assert attempts["gemini"] == 2
        assert "Architecture v2" in report

    @pytest.mark.asyncio
    async def test_risk_review_failure_degrades(self, executor, runner):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {"gemini": "Design", "droid": "Plan", "cursor-agent": CommandExecutionError("auth expired")},
            calls,
        )

        report = await executor.execute("feature-design", {"feature_description": "Export"})

        assert "Plan" in report
        assert "Cursor analysis failed:** auth expired" in report


class TestParallelReview:
    @pytest.mark.asyncio
    async def test_reviews_with_diversified_backends(self, executor, runner, project_with_sources):
        calls: list = []
        runner.run.side_effect = scripted_runner(
            {"gemini": "Looks solid", "droid": CommandExecutionError("droid down"), "cursor-agent": "ok"},
            calls,
        )

        report = await executor.execute(
            "parallel-review",
            {"files": ["app/service.py"], "focus": "security", "backend_count": 2},
        )

        assert sorted(executable for executable, _ in calls) == ["droid", "gemini"]
        assert "## Review (gemini)" in report
        assert "Looks solid" in report
        assert "Droid analysis failed:** droid down" in report
        assert "- **Successful Reviews**: 1" in report

        stats = {s.backend: s for s in executor.selector.all_stats()}
        assert stats["gemini"].successful_calls == 1
        assert stats["droid"].failed_calls == 1

    @pytest.mark.asyncio
    async def test_backend_count_validated(self, executor):
        with pytest.raises(InvalidRequestError):
            await executor.execute("parallel-review", {"files": ["a.py"], "backend_count": 5})

    @pytest.mark.asyncio
    async def test_no_readable_files(self, executor, runner):
        report = await executor.execute("parallel-review", {"files": ["missing.py"]})
        assert "None of the requested files could be read." in report
        runner.run.assert_not_called()


def git_and_backend_runner(
    git_outputs: dict[tuple[str, ...], object],
    backend_outputs: dict[str, object],
    calls: list[tuple[str, list[str]]],
):
    """Runner answering git argv tuples and backend executables."""

    async def run(executable, args, **kwargs):
        calls.append((executable, args))
        response = git_outputs.get(tuple(args), "") if executable == "git" else backend_outputs[executable]
        if isinstance(response, BaseException):
            raise response
        return response

    return run


class TestVerdicts:
    @pytest.mark.parametrize("output,expected", [
        ("All fine.\nVERDICT: PASS", "PASS"),
        ("**VERDICT: FAIL** missing test", "FAIL"),
        ("`VERDICT: pass`", "PASS"),
        ("VERDICT: FAIL\n...\nVERDICT: PASS", "PASS"),
        ("No verdict here", None),
    ])
    def test_parse_verdict(self, output, expected):
        assert parse_verdict(output) == expected

    @pytest.mark.parametrize("verdicts,expected", [
        (["PASS", "PASS"], "PASS"),
        (["PASS", "FAIL"], "FAIL"),
        (["PASS", None], "INCONCLUSIVE"),
        ([], "INCONCLUSIVE"),
    ])
    def test_combine_verdicts(self, verdicts, expected):
        assert combine_verdicts(verdicts) == expected


class TestPreCommitValidate:
    @pytest.mark.asyncio
    async def test_reviews_staged_diff(self, executor, runner):
        calls: list = []
        runner.run.side_effect = git_and_backend_runner(
            {
                ("diff", "--cached"): "diff --git a/app/service.py b/app/service.py\n+    return user.id",
                ("diff", "--cached", "--name-only"): "app/service.py",
            },
            {"cursor-agent": "Looks fine.\nVERDICT: PASS", "gemini": "**VERDICT: FAIL** no test added"},
            calls,
        )

        report = await executor.execute("pre-commit-validate", {})

        backend_calls = [(e, a) for e, a in calls if e != "git"]
        assert sorted(e for e, _ in backend_calls) == ["cursor-agent", "gemini"]
        assert all("+    return user.id" in " ".join(a) for _, a in backend_calls)
        assert "- app/service.py" in report
        assert "## Review (cursor): PASS" in report
        assert "## Review (gemini): FAIL" in report
        assert "- **Verdict**: FAIL" in report

    @pytest.mark.asyncio
    async def test_nothing_staged(self, executor, runner):
        calls: list = []
        runner.run.side_effect = git_and_backend_runner({}, {}, calls)

        report = await executor.execute("pre-commit-validate", {})

        assert "No staged changes to validate." in report
        assert {e for e, _ in calls} == {"git"}

    @pytest.mark.asyncio
    async def test_failed_review_is_inconclusive(self, executor, runner):
        calls: list = []
        runner.run.side_effect = git_and_backend_runner(
            {("diff", "--cached"): "+x", ("diff", "--cached", "--name-only"): "x.py"},
            {"cursor-agent": "VERDICT: PASS", "gemini": CommandExecutionError("auth expired")},
            calls,
        )

        report = await executor.execute("pre-commit-validate", {})

        assert "Gemini analysis failed:** auth expired" in report
        assert "- **Verdict**: INCONCLUSIVE" in report
        assert "- **Failed Reviews**: 1" in report


class TestValidateLastCommit:
    @pytest.mark.asyncio
    async def test_validates_head(self, executor, runner):
        calls: list = []
        runner.run.side_effect = git_and_backend_runner(
            {
                ("show", "--no-patch", "--format=%H|%an|%ad|%s", "HEAD"): "abc12345|Jane Doe|today|Guard against None user",
                ("show", "--format=", "HEAD"): "+    if user is None:\n+        return None",
                ("show", "--format=", "--name-only", "HEAD"): "app/service.py",
            },
            {"cursor-agent": "Change matches the message.\nVERDICT: PASS"},
            calls,
        )

        report = await executor.execute("validate-last-commit", {})

        prompt = " ".join(next(a for e, a in calls if e == "cursor-agent"))
        assert "Guard against None user" in prompt
        assert "+    if user is None:" in prompt
        assert "- **Hash**: abc12345" in report
        assert "- app/service.py" in report
        assert "## Validation (cursor)" in report
        assert "- **Verdict**: PASS" in report
        assert executor.selector.get_stats("cursor").successful_calls == 1

    @pytest.mark.asyncio
    async def test_outside_a_repository(self, executor, runner):
        calls: list = []
        runner.run.side_effect = git_and_backend_runner(
            {("rev-parse", "--git-dir"): CommandExecutionError("fatal: not a git repository")}, {}, calls
        )

        with pytest.raises(GitError, match="not a git repository"):
            await executor.execute("validate-last-commit", {})
        assert {e for e, _ in calls} == {"git"}
