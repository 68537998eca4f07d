"""Qwen Code CLI adapter.

CLI Reference:
    qwen -p "prompt"                        # Non-interactive
    qwen --model qwen3-coder-plus -p "..."  # Specify model
    qwen --sandbox --yolo -p "..."          # Sandboxed, auto-approve
    qwen --approval-mode auto_edit -p "..." # Approval mode
"""

from __future__ import annotations

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest


class QwenAdapter(BackendAdapter):
    """Adapter for the Qwen Code CLI (prompt passed with -p)."""

    BACKEND = Backend.QWEN
    EXECUTABLE = "qwen"

    @property
    def default_model(self) -> str | None:
        return self.primary_model

    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """Build CLI arguments."""
        args: list[str] = []

        if model:
            args.extend(["--model", model])
        if request.sandbox:
            args.append("--sandbox")
        if request.approval_mode:
            args.extend(["--approval-mode", request.approval_mode])
        if request.yolo:
            args.append("--yolo")
        if request.all_files:
            args.append("--all-files")
        if request.debug:
            args.append("--debug")

        args.extend(["-p", request.prompt])
        return args
