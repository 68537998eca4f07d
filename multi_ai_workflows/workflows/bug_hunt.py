"""Bug hunt workflow.

Finds and analyzes bugs from a symptom description:

1. Discover candidate files with gemini when none are supplied.
2. Read the files and fan out to three backends concurrently:
   gemini (root cause), cursor (hypotheses), droid (remediation plan).
3. Follow relative imports of the analyzed files when the analysis reports
   an issue.
4. Build a markdown report; failed branches become inline failure text.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

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
from multi_ai_workflows.workflows.report import backend_section, failure_text, format_workflow_output

logger = logging.getLogger(__name__)

ISSUE_KEYWORDS = (
    "bug", "error", "issue", "problem", "wrong", "incorrect",
    "missing", "broken", "fail", "crash", "exception",
)

# Source-like paths mentioned in free text
FILE_PATH_PATTERN = re.compile(
    r"(?:^|\s|`)([\w\-./]+\.(?:py|pyi|ts|tsx|js|jsx|json|md|toml|yaml|yml|cfg|ini))\b"
)

# `from .x import y`, `from ..x import y`, `import './x'` and `from './x'`
RELATIVE_IMPORT_PATTERNS = (
    re.compile(r"^\s*from\s+(\.+)([\w.]*)\s+import\s+\(?([\w, ]+)", re.MULTILINE),
    re.compile(r"""(?:import|from)\s+['"](\.{1,2}/[^'"]+)['"]"""),
)
SCRIPT_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", "/index.ts", "/index.js")


class BugHuntParams(WorkflowParams):
    """Parameters for the bug-hunt workflow."""

    symptoms: str = Field(min_length=1, description="Description of the problem's symptoms")
    suspected_files: list[str] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list, description="Extra files such as logs")
    backend_overrides: list[Backend] | None = None
    output_file: str | None = None


def has_issue(analysis: str) -> bool:
    """True if an analysis mentions any issue keyword (case-insensitive)."""
    lowered = analysis.lower()
    return any(keyword in lowered for keyword in ISSUE_KEYWORDS)


def extract_file_paths(response: str, project_root: Path) -> list[str]:
    """Existing file paths mentioned in a backend response, deduplicated."""
    found: list[str] = []
    for match in FILE_PATH_PATTERN.finditer(response):
        path = match.group(1).strip()
        if path not in found and (project_root / path).is_file():
            found.append(path)
    return found


def find_related_files(file_path: str, content: str, project_root: Path) -> list[str]:
    """
    Files referenced through relative imports in content.

    Args:
        file_path: Path of the file (relative to project_root).
        content: Its text.
        project_root: Root used to resolve and report paths.

    Returns:
        Existing related file paths, relative to project_root.
    """
    base_dir = (project_root / file_path).parent
    related: list[Path] = []

    for dots, module, names in RELATIVE_IMPORT_PATTERNS[0].findall(content):
        package_dir = base_dir
        for _ in range(len(dots) - 1):
            package_dir = package_dir.parent
        target = package_dir.joinpath(*module.split(".")) if module else package_dir
        for candidate in (target.with_suffix(".py"), target / "__init__.py"):
            if candidate.is_file():
                related.append(candidate)
                break
        # Imported names may be submodules of a package
        for name in names.split(","):
            submodule = target / f"{name.strip()}.py"
            if name.strip() and submodule.is_file():
                related.append(submodule)

    for import_path in RELATIVE_IMPORT_PATTERNS[1].findall(content):
        target = base_dir / import_path
        for candidate in [target] + [Path(f"{target}{ext}") for ext in SCRIPT_EXTENSIONS]:
            if candidate.is_file():
                related.append(candidate)
                break

    result: list[str] = []
    for path in related:
        try:
            relative = str(path.resolve().relative_to(project_root))
        except ValueError:
            continue
        if relative not in result:
            result.append(relative)
    return result


def _files_block(files: list[tuple[str, str]]) -> str:
    return "\n".join(f"\n--- {path} ---\n{content}" for path, content in files)


async def _discover_files(
    params: BugHuntParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> list[str]:
    services.progress("Searching codebase for relevant files...")
    response = await services.dispatch(ExecutionRequest(
        backend=Backend.GEMINI.value,
        prompt=(
            "Given these bug symptoms, list the most likely files in the codebase "
            "that could be causing the issue.\n\n"
            f"Symptoms: {params.symptoms}\n\n"
            "Consider:\n"
            "- Error messages and stack traces\n"
            "- Component/module names mentioned\n"
            "- Common locations for such issues\n\n"
            "List only file paths, one per line, in order of likelihood."
        ),
    ))
    files = extract_file_paths(response, services.project_root)
    ctx.set("discovered_files", files)
    return files


async def run_bug_hunt(
    params: BugHuntParams,
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> str:
    """Execute the bug-hunt workflow."""
    ctx.set("symptoms", params.symptoms)

    files_to_analyze = list(params.suspected_files)
    if not files_to_analyze:
        files_to_analyze = await services.step(
            ctx, "discover_files", lambda: _discover_files(params, ctx, services)
        )
        if not files_to_analyze:
            return format_workflow_output(
                "Bug Hunt",
                "Unable to identify relevant files. Please provide suspected files manually.",
            )
        services.progress(f"Identified {len(files_to_analyze)} files to analyze")

    file_contents = await services.read_files(files_to_analyze)
    ctx.set("files_analyzed", [path for path, _ in file_contents])

    enabled = set(params.backend_overrides or [Backend.GEMINI, Backend.CURSOR, Backend.DROID])
    services.progress("Analyzing files with multiple AI backends...")

    analyses, failed = await _fan_out(params, files_to_analyze, file_contents, enabled, ctx, services)
    gemini_analysis = analyses.get(Backend.GEMINI, "") if Backend.GEMINI not in failed else ""

    # Follow imports of analyzed files when a successful root-cause analysis found something
    problematic = file_contents if gemini_analysis and has_issue(gemini_analysis) else []
    related: list[str] = []
    if problematic:
        services.progress("Searching for related files...")
        for path, content in problematic:
            for candidate in find_related_files(path, content, services.project_root):
                if candidate not in files_to_analyze and candidate not in related:
                    related.append(candidate)
        ctx.set("related_files", related)

    services.progress("Generating bug report...")
    report = _build_report(params, files_to_analyze, analyses, enabled, problematic, related)
    output = format_workflow_output("Bug Hunt", report)

    if params.output_file:
        await services.write_report(params.output_file, output)

    await services.audit.log(
        "bug_hunt_complete",
        services.autonomy_level,
        {"files_analyzed": len(files_to_analyze), "related_files": len(related)},
    )
    return output


async def _fan_out(
    params: BugHuntParams,
    files: list[str],
    file_contents: list[tuple[str, str]],
    enabled: set[Backend],
    ctx: WorkflowContext,
    services: WorkflowServices,
) -> tuple[dict[Backend, str], set[Backend]]:
    """
    Run the enabled analyses concurrently; each branch degrades on its own.

    Returns:
        Output (or failure text) per backend, and the backends that failed.
    """
    file_list = "\n".join(files)
    requests: dict[Backend, ExecutionRequest] = {}
    failed: set[Backend] = set()

    if Backend.GEMINI in enabled:
        requests[Backend.GEMINI] = ExecutionRequest(
            backend=Backend.GEMINI.value,
            prompt=(
                "Analyze these files for the reported bug.\n\n"
                f"Symptoms: {params.symptoms}\n\n"
                f"Files:\n{_files_block(file_contents)}\n\n"
                "Provide:\n"
                "1. Root cause analysis\n"
                "2. Affected code sections\n"
                "3. Why this causes the symptoms\n"
                "4. Potential side effects"
            ),
        )
    if Backend.CURSOR in enabled:
        requests[Backend.CURSOR] = ExecutionRequest(
            backend=Backend.CURSOR.value,
            prompt=(
                "Act as a code investigator. You have the following symptoms and files.\n\n"
                f"Symptoms: {params.symptoms}\n\n"
                f"Main files:\n{file_list}\n\n"
                "Generate:\n"
                "1. 3-5 hypotheses ordered by likelihood\n"
                "2. Evidence needed to confirm them\n"
                "3. Suggested experiments and tools\n"
                "4. Metrics to monitor"
            ),
            attachments=list(params.attachments),
            output_format="text",
        )
    if Backend.DROID in enabled:
        requests[Backend.DROID] = ExecutionRequest(
            backend=Backend.DROID.value,
            prompt=(
                "Create an operational plan to fix the described bugs.\n\n"
                f"Symptoms: {params.symptoms}\n\n"
                f"Files:\n{file_list}\n\n"
                "Required output:\n"
                "- Remediation steps (max 5) with priority\n"
                "- Automated checks for each step\n"
                "- Residual risks"
            ),
            auto="medium",
            attachments=list(params.attachments),
            output_format="text",
        )

    async def run_branch(backend: Backend, request: ExecutionRequest) -> str:
        try:
            return await services.dispatch(request)
        except DispatchError as e:
            logger.warning("Bug hunt %s branch failed: %s", backend.value, e)
            ctx.increment("failed_branches")
            failed.add(backend)
            return failure_text(backend.value.capitalize(), e)

    outputs = await asyncio.gather(*(run_branch(b, r) for b, r in requests.items()))
    analyses = dict(zip(requests, outputs))
    for backend, output in analyses.items():
        ctx.set(f"analysis:{backend.value}", output)
    return analyses, failed


def _build_report(
    params: BugHuntParams,
    files: list[str],
    analyses: dict[Backend, str],
    enabled: set[Backend],
    problematic: list[tuple[str, str]],
    related: list[str],
) -> str:
    sections = [
        "## Symptoms",
        "",
        params.symptoms,
        "",
        "## Files Analyzed",
        "",
        "\n".join(f"- {path}" for path in files),
    ]
    if params.attachments:
        sections.extend(["", "## Attachments", "", "\n".join(f"- {a}" for a in params.attachments)])

    headings = {
        Backend.GEMINI: "Root Cause Analysis (Gemini)",
        Backend.CURSOR: "Hypothesis Exploration (Cursor Agent)",
        Backend.DROID: "Autonomous Fix Plan (Droid)",
    }
    for backend, heading in headings.items():
        if backend in analyses:
            sections.extend(["", "---", "", backend_section(heading, analyses[backend])])
        elif backend == Backend.GEMINI and backend not in enabled:
            sections.extend(["", "---", "", backend_section(heading, "Gemini analysis disabled via backend overrides.")])

    if related:
        sections.extend(["", "### Related Files Impact", "", ", ".join(related)])

    sections.extend([
        "",
        "---",
        "",
        "## Summary",
        "",
        f"- **Files Analyzed**: {len(files)}",
        f"- **Problematic Files**: {len(problematic)}",
        f"- **Related Files**: {'Yes' if related else 'No'}",
    ])
    return "\n".join(sections)


bug_hunt_workflow = register_workflow(WorkflowDefinition(
    name="bug-hunt",
    description="Hunts for bugs based on symptoms using AI-powered analysis",
    params_model=BugHuntParams,
    run=run_bug_hunt,
))
