"""Atlassian Rovo Dev adapter (invoked through acli).

CLI Reference:
    acli rovodev run [OPTIONS] [MESSAGE]

Only --shadow, --verbose, --restore and --yolo are supported, and the prompt
is a positional argument, not a flag.
"""

from __future__ import annotations

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest


class RovodevAdapter(BackendAdapter):
    """Adapter for `acli rovodev run`."""

    BACKEND = Backend.ROVODEV
    EXECUTABLE = "acli"
    SUBCOMMAND = ["rovodev", "run"]

    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """Build CLI arguments (model is not supported and ignored)."""
        args = list(self.SUBCOMMAND)

        if request.shadow:
            args.append("--shadow")
        if request.verbose:
            args.append("--verbose")
        if request.restore:
            args.append("--restore")
        if request.yolo:
            args.append("--yolo")

        args.append(request.prompt)
        return args
