"""Factory Droid CLI adapter.

CLI Reference:
    droid exec "prompt"
    droid exec --auto medium --session-id abc "prompt"
    droid exec --file log.txt --cwd /repo --output-format json "prompt"
"""

from __future__ import annotations

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest

# Autonomy levels droid understands for --auto
AUTO_LEVELS = ("low", "medium", "high")


class DroidAdapter(BackendAdapter):
    """Adapter for `droid exec`."""

    BACKEND = Backend.DROID
    EXECUTABLE = "droid"

    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """Build CLI arguments."""
        args = ["exec"]

        if model:
            args.extend(["--model", model])

        auto = request.auto
        if auto is None and request.autonomy_level in AUTO_LEVELS:
            auto = request.autonomy_level
        if auto:
            args.extend(["--auto", auto])

        if request.session_id:
            args.extend(["--session-id", request.session_id])
        if request.skip_permissions_unsafe:
            args.append("--skip-permissions-unsafe")
        for attachment in request.attachments:
            args.extend(["--file", attachment])
        if request.cwd:
            args.extend(["--cwd", request.cwd])
        if request.output_format:
            args.extend(["--output-format", request.output_format])

        args.append(request.prompt)
        return args
