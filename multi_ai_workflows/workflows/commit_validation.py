"""Commit validation workflows.

pre-commit-validate
    Reviews the staged diff with complementary backends, concurrently, and
    folds their verdicts into one PASS / FAIL / INCONCLUSIVE result.

validate-last-commit
    Reviews one commit (HEAD by default) with the selector's optimal backend.

Both read git state through WorkflowServices.git, so they need the
GIT_DIFF / GIT_LOG permissions of the read-only level and nothing more.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time

from pydantic import Field

from multi_ai_workflows.backends import ExecutionRequest
from multi_ai_workflows.core.errors import DispatchError
from multi_ai_workflows.utils import truncate_with_marker
from multi_ai_workflows.workflows.context import WorkflowContext
from multi_ai_workflows.workflows.executor import (
    WorkflowDefinition,
    WorkflowParams,
    WorkflowServices,
    register_workflow,
)
from multi_ai_workflows.workflows.model_selector import create_task_characteristics
from multi_ai_workflows.workflows.report import backend_section, failure_text, format_workflow_output

logger = logging.getLogger(__name__)

# Cap on the diff embedded in a prompt
MAX_DIFF_LENGTH = 60_000

VERDICT_PASS = "PASS"
VERDICT_FAIL = "FAIL"
VERDICT_INCONCLUSIVE = "INCONCLUSIVE"

VERDICT_PATTERN = re.compile(r"^[\s*#>`-]*VERDICT[\s*]*:[\s*]*(PASS|FAIL)\b", re.IGNORECASE | re.MULTILINE)

VERDICT_INSTRUCTIONS = (
    "End your answer with a single line `VERDICT: PASS` if the change is safe "
    "to commit, or `VERDICT: FAIL` if it must be fixed first."
)


def parse_verdict(output: str) -> str | None:
    """Last VERDICT line of a review, or None when the review gave none."""
    matches = VERDICT_PATTERN.findall(output)
    return matches[-1].upper() if matches else None


def combine_verdicts(verdicts: list[str | None]) -> str:
    """Any FAIL fails; PASS needs every review to pass."""
    if VERDICT_FAIL in verdicts:
        return VERDICT_FAIL
    if verdicts and all(v == VERDICT_PASS for v in verdicts):
        return VERDICT_PASS
    return VERDICT_INCONCLUSIVE


class PreCommitParams(WorkflowParams):
    """Parameters for the pre-commit-validate workflow."""

    focus: str = "correctness and security"
    backend_count: int = Field(default=2, ge=1, le=3)
    output_file: str | None = None


class ValidateCommitParams(WorkflowParams):
    """Parameters for the validate-last-commit workflow."""

    commit_ref: str = "HEAD"
    output_file: str | None = None


async def run_pre_commit_validate(
    params: PreCommitParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> str:
    """Execute the pre-commit-validate workflow."""
    services.progress("Reading staged changes...")
    diff = await services.git.staged_diff()
    if not diff.strip():
        return format_workflow_output("Pre-commit Validation", "No staged changes to validate.")

    files = await services.git.staged_files()
    ctx.set("staged_files", files)

    task = create_task_characteristics("pre-commit-validate")
    backends = await services.selector.select_parallel(task, params.backend_count)
    ctx.set("review_backends", backends)

    file_list = "\n".join(files)
    prompt = (
        f"Review these staged changes before they are committed, focusing on {params.focus}.\n\n"
        f"Files:\n{file_list}\n\n"
        f"Diff:\n{truncate_with_marker(diff, MAX_DIFF_LENGTH)}\n\n"
        "List blocking problems first, then minor remarks.\n"
        f"{VERDICT_INSTRUCTIONS}"
    )

    async def review(backend: str) -> tuple[str, str | None]:
        start = time.monotonic()
        try:
            output = await services.dispatch(ExecutionRequest(backend=backend, prompt=prompt))
        except DispatchError as e:
            logger.warning("Pre-commit review by %s failed: %s", backend, e)
            await services.selector.record_usage(backend, task, False, (time.monotonic() - start) * 1000)
            ctx.increment("failed_reviews")
            return failure_text(backend.capitalize(), e), None
        await services.selector.record_usage(backend, task, True, (time.monotonic() - start) * 1000)
        return output, parse_verdict(output)

    services.progress(f"Validating {len(files)} staged files with {', '.join(backends)}...")
    results = await asyncio.gather(*(review(b) for b in backends))

    verdicts = [verdict for _, verdict in results]
    verdict = combine_verdicts(verdicts)
    ctx.set("verdict", verdict)

    sections = ["## Staged Files", "", "\n".join(f"- {path}" for path in files)]
    for backend, (output, backend_verdict) in zip(backends, results):
        heading = f"Review ({backend})" + (f": {backend_verdict}" if backend_verdict else "")
        sections.extend(["", backend_section(heading, output)])

    report = format_workflow_output(
        "Pre-commit Validation",
        "\n".join(sections),
        {
            "Verdict": verdict,
            "Backends": ", ".join(backends),
            "Failed Reviews": ctx.get_or_default("failed_reviews", 0),
        },
    )
    if params.output_file:
        await services.write_report(params.output_file, report)
    return report


async def run_validate_last_commit(
    params: ValidateCommitParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> str:
    """Execute the validate-last-commit workflow."""
    services.progress(f"Reading commit {params.commit_ref}...")
    commit = await services.git.commit_info(params.commit_ref)
    ctx.set("commit", commit.hash)

    task = create_task_characteristics("validate-last-commit")
    backend = await services.selector.select_optimal(task)
    ctx.set("validator_backend", backend)

    prompt = (
        "Validate the following commit. Check that the change matches its message, "
        "and look for bugs, regressions and missing tests.\n\n"
        f"Commit: {commit.hash}\n"
        f"Author: {commit.author}\n"
        f"Message: {commit.message}\n\n"
        f"Diff:\n{truncate_with_marker(commit.diff, MAX_DIFF_LENGTH)}\n\n"
        f"{VERDICT_INSTRUCTIONS}"
    )

    async def validate() -> str:
        services.progress(f"Validating {commit.hash[:8]} with {backend}...")
        return await services.dispatch(ExecutionRequest(backend=backend, prompt=prompt))

    start = time.monotonic()
    try:
        output = await services.step(ctx, "validate_commit", validate)
    except DispatchError:
        await services.selector.record_usage(backend, task, False, (time.monotonic() - start) * 1000)
        raise
    await services.selector.record_usage(backend, task, True, (time.monotonic() - start) * 1000)

    verdict = parse_verdict(output) or VERDICT_INCONCLUSIVE
    ctx.set("verdict", verdict)

    sections = [
        "## Commit",
        "",
        f"- **Hash**: {commit.hash}",
        f"- **Author**: {commit.author}",
        f"- **Date**: {commit.date}",
        f"- **Message**: {commit.message}",
        "",
        "### Files Changed",
        "",
        "\n".join(f"- {path}" for path in commit.files) or "_None._",
        "",
        backend_section(f"Validation ({backend})", output),
    ]
    report = format_workflow_output(
        "Commit Validation",
        "\n".join(sections),
        {"Verdict": verdict, "Backend": backend},
    )
    if params.output_file:
        await services.write_report(params.output_file, report)
    return report


pre_commit_workflow = register_workflow(WorkflowDefinition(
    name="pre-commit-validate",
    description="Validates staged changes with complementary AI backends before committing",
    params_model=PreCommitParams,
    run=run_pre_commit_validate,
))

validate_last_commit_workflow = register_workflow(WorkflowDefinition(
    name="validate-last-commit",
    description="Validates a commit (HEAD by default) against its message",
    params_model=ValidateCommitParams,
    run=run_validate_last_commit,
))
