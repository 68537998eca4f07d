"""Markdown report helpers shared by workflows."""

from __future__ import annotations

from datetime import datetime, UTC
from typing import Any

from multi_ai_workflows.utils import truncate_with_marker

# Cap on a single backend section in a report
MAX_SECTION_LENGTH = 20_000


def format_workflow_output(
    title: str,
    body: str,
    metadata: dict[str, Any] | None = None,
) -> str:
    """
    Wrap a workflow body in the standard report frame.

    Args:
        title: Report title (workflow display name).
        body: Markdown body.
        metadata: Optional key/value pairs rendered below the body.

    Returns:
        The complete markdown report.
    """
    parts = [f"# {title}", "", body.strip(), ""]

    if metadata:
        parts.append("---")
        parts.append("")
        for key, value in metadata.items():
            parts.append(f"- **{key}**: {value}")
        parts.append("")

    parts.append(f"*Generated {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S')} UTC*")
    return "\n".join(parts)


def backend_section(heading: str, content: str) -> str:
    """One `## heading` section, truncated to a readable size."""
    text = content.strip() or "_No output._"
    return f"## {heading}\n\n{truncate_with_marker(text, MAX_SECTION_LENGTH)}"


def failure_text(backend_label: str, error: BaseException | str) -> str:
    """Readable inline failure message for a backend branch."""
    return f"**{backend_label} analysis failed:** {error}"
