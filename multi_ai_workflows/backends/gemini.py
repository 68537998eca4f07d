"""Google Gemini CLI adapter.

CLI Reference:
    gemini -p "prompt"                      # Non-interactive
    gemini -m gemini-2.5-flash -p "prompt"  # Specify model
    gemini --sandbox -p "prompt"            # Sandboxed execution
    gemini --yolo -p "prompt"               # Auto-approve all actions

When no model is requested the primary tier is passed explicitly, so a quota
failure on the default model can fall back to the flash tier.
"""

from __future__ import annotations

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest


class GeminiAdapter(BackendAdapter):
    """Adapter for Google Gemini CLI."""

    BACKEND = Backend.GEMINI
    EXECUTABLE = "gemini"

    @property
    def default_model(self) -> str | None:
        return self.primary_model

    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """Build CLI arguments."""
        args: list[str] = []

        # Model selection
        if model:
            args.extend(["-m", model])

        if request.sandbox:
            args.append("--sandbox")
        if request.approval_mode:
            args.extend(["--approval-mode", request.approval_mode])

        # Auto-approve all actions (yolo mode)
        if request.yolo:
            args.append("--yolo")
        if request.all_files:
            args.append("--all-files")
        if request.debug:
            args.append("--debug")

        args.extend(["-p", request.prompt])
        return args
