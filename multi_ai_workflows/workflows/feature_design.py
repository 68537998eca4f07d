"""Feature design workflow.

1. Architecture proposal from the selector's optimal backend (retried from a
   checkpoint on transient failure).
2. Implementation plan (droid) and risk review (cursor), concurrently; each
   branch degrades to a failure line.
3. Markdown report, optionally written to disk.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import Field

from multi_ai_workflows.backends import Backend, ExecutionRequest
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


class FeatureDesignParams(WorkflowParams):
    """Parameters for the feature-design workflow."""

    feature_description: str = Field(min_length=1)
    target_files: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    backend_overrides: list[Backend] | None = None
    output_file: str | None = None


def _context_block(params: FeatureDesignParams, files: list[tuple[str, str]]) -> str:
    lines = [f"Feature: {params.feature_description}"]
    if params.constraints:
        lines.append("Constraints:")
        lines.extend(f"- {c}" for c in params.constraints)
    for path, content in files:
        lines.append(f"\n--- {path} ---\n{content}")
    return "\n".join(lines)


async def run_feature_design(
    params: FeatureDesignParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> str:
    """Execute the feature-design workflow."""
    ctx.set("feature", params.feature_description)
    files = await services.read_files(params.target_files)
    background = _context_block(params, files)

    task = create_task_characteristics("feature-design")
    allowed = [b.value for b in params.backend_overrides] if params.backend_overrides else None
    architect = await services.selector.select_optimal(task, allowed)
    ctx.set("architect_backend", architect)

    async def design_architecture() -> str:
        services.progress(f"Designing architecture with {architect}...")
        proposal = await services.dispatch(ExecutionRequest(
            backend=architect,
            prompt=(
                "Design the architecture for the following feature.\n\n"
                f"{background}\n\n"
                "Provide:\n"
                "1. Components and responsibilities\n"
                "2. Data flow and interfaces\n"
                "3. Files to create or modify\n"
                "4. Trade-offs considered"
            ),
        ))
        ctx.set("architecture", proposal)
        return proposal

    architecture = await services.step(ctx, "architecture", design_architecture)

    requests = {
        Backend.DROID: ExecutionRequest(
            backend=Backend.DROID.value,
            prompt=(
                "Turn this architecture into an implementation plan.\n\n"
                f"{background}\n\nArchitecture:\n{architecture}\n\n"
                "List ordered implementation steps with the tests that verify each one."
            ),
            auto="low",
            output_format="text",
        ),
        Backend.CURSOR: ExecutionRequest(
            backend=Backend.CURSOR.value,
            prompt=(
                "Review this architecture for risks.\n\n"
                f"{background}\n\nArchitecture:\n{architecture}\n\n"
                "Cover security, performance, backwards compatibility and edge cases."
            ),
            output_format="text",
        ),
    }
    if params.backend_overrides:
        requests = {b: r for b, r in requests.items() if b in params.backend_overrides}

    async def run_branch(backend: Backend, request: ExecutionRequest) -> str:
        try:
            return await services.dispatch(request)
        except DispatchError as e:
            logger.warning("Feature design %s branch failed: %s", backend.value, e)
            return failure_text(backend.value.capitalize(), e)

    services.progress("Planning implementation and reviewing risks...")
    outputs = await asyncio.gather(*(run_branch(b, r) for b, r in requests.items()))
    results = dict(zip(requests, outputs))

    sections = [
        "## Feature",
        "",
        params.feature_description,
        "",
        backend_section(f"Architecture ({architect})", architecture),
    ]
    if Backend.DROID in results:
        sections.extend(["", backend_section("Implementation Plan (Droid)", results[Backend.DROID])])
    if Backend.CURSOR in results:
        sections.extend(["", backend_section("Risk Review (Cursor Agent)", results[Backend.CURSOR])])

    output = format_workflow_output(
        "Feature Design",
        "\n".join(sections),
        {"Target Files": len(files), "Constraints": len(params.constraints)},
    )

    if params.output_file:
        await services.write_report(params.output_file, output)
    return output


feature_design_workflow = register_workflow(WorkflowDefinition(
    name="feature-design",
    description="Designs a feature: architecture, implementation plan and risk review",
    params_model=FeatureDesignParams,
    run=run_feature_design,
))
