"""Cursor Agent CLI adapter.

CLI Reference:
    cursor-agent -p "prompt" --model sonnet-4.5
    cursor-agent -p "prompt" --output-format json --cwd /repo
    cursor-agent -p "prompt" --file src/a.py --file logs/err.txt --auto-approve

The autonomy level is request metadata only; Cursor Agent has no flag for it.
"""

from __future__ import annotations

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest


class CursorAgentAdapter(BackendAdapter):
    """Adapter for the headless Cursor Agent CLI."""

    BACKEND = Backend.CURSOR
    EXECUTABLE = "cursor-agent"

    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """Build CLI arguments."""
        args = ["-p", request.prompt]

        if model:
            args.extend(["--model", model])
        if request.output_format:
            args.extend(["--output-format", request.output_format])
        if request.cwd:
            args.extend(["--cwd", request.cwd])
        for attachment in request.attachments:
            args.extend(["--file", attachment])
        if request.auto_approve:
            args.append("--auto-approve")

        return args
