"""Parallel code review with diversified backends."""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import Field

from multi_ai_workflows.backends import ExecutionRequest
from multi_ai_workflows.core.errors import DispatchError
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


class ParallelReviewParams(WorkflowParams):
    """Parameters for the parallel-review workflow."""

    files: list[str] = Field(min_length=1)
    focus: str = "general"
    backend_count: int = Field(default=2, ge=1, le=3)


async def run_parallel_review(
    params: ParallelReviewParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> str:
    """Execute the parallel-review workflow."""
    files = await services.read_files(params.files)
    if not files:
        return format_workflow_output("Parallel Review", "None of the requested files could be read.")

    task = create_task_characteristics("parallel-review")
    backends = await services.selector.select_parallel(task, params.backend_count)
    ctx.set("review_backends", backends)

    file_block = "\n".join(f"\n--- {path} ---\n{content}" for path, content in files)
    prompt = (
        f"Review the following code with a focus on {params.focus}.\n\n"
        f"{file_block}\n\n"
        "Report issues by severity with file and line references, then suggest fixes."
    )

    async def review(backend: str) -> str:
        start = time.monotonic()
        try:
            output = await services.dispatch(ExecutionRequest(backend=backend, prompt=prompt))
        except DispatchError as e:
            logger.warning("Review by %s failed: %s", backend, e)
            await services.selector.record_usage(backend, task, False, (time.monotonic() - start) * 1000)
            ctx.increment("failed_reviews")
            return failure_text(backend.capitalize(), e)
        await services.selector.record_usage(backend, task, True, (time.monotonic() - start) * 1000)
        ctx.increment("completed_reviews")
        return output

    services.progress(f"Reviewing {len(files)} files with {', '.join(backends)}...")
    outputs = await asyncio.gather(*(review(b) for b in backends))

    sections = [
        "## Files Reviewed",
        "",
        "\n".join(f"- {path}" for path, _ in files),
    ]
    for backend, output in zip(backends, outputs):
        sections.extend(["", backend_section(f"Review ({backend})", output)])

    return format_workflow_output(
        "Parallel Review",
        "\n".join(sections),
        {
            "Focus": params.focus,
            "Backends": ", ".join(backends),
            "Successful Reviews": ctx.get_or_default("completed_reviews", 0),
        },
    )


parallel_review_workflow = register_workflow(WorkflowDefinition(
    name="parallel-review",
    description="Reviews files concurrently with complementary AI backends",
    params_model=ParallelReviewParams,
    run=run_parallel_review,
))
