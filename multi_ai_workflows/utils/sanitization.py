"""Prompt sanitization and validation utilities."""

from __future__ import annotations

from pathlib import Path
import logging

from multi_ai_workflows.core.errors import InvalidRequestError

logger = logging.getLogger(__name__)


class PathTraversalError(InvalidRequestError):
    """Raised when a path attempts directory traversal."""

    pass


class PromptSanitizer:
    """
    Validate and sanitize prompts before backend invocation.

    SECURITY NOTE: Backends are started with create_subprocess_exec() and an
    argv list, NOT a shell. Shell metacharacters are passed as literal
    strings, so no quoting is applied.
    """

    MAX_PROMPT_LENGTH = 100_000  # 100KB

    def __init__(self, project_root: Path | None = None) -> None:
        self.project_root = project_root.resolve() if project_root else None

    def validate_prompt(self, prompt: str | None) -> str:
        """
        Validate prompt for CLI argument passing.

        Args:
            prompt: The raw prompt string.

        Returns:
            Validated prompt string.

        Raises:
            InvalidRequestError: If the prompt is empty or too long.
        """
        if prompt is None or not prompt.strip():
            raise InvalidRequestError("No prompt provided. Please provide a non-empty prompt.")

        # Null bytes could truncate strings in C-based CLIs
        validated = prompt.replace("\x00", "")

        if len(validated) > self.MAX_PROMPT_LENGTH:
            raise InvalidRequestError(
                f"Prompt exceeds {self.MAX_PROMPT_LENGTH} characters "
                f"(got {len(validated)})"
            )

        self._log_suspicious_patterns(validated)

        return validated

    def sanitize_file_path(self, path: str) -> Path:
        """
        Sanitize file paths to prevent directory traversal.

        Args:
            path: The raw path string (relative paths resolve against project root).

        Returns:
            Resolved Path object.

        Raises:
            PathTraversalError: If path escapes project root.
        """
        if self.project_root is None:
            return Path(path).resolve()

        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        resolved = candidate.resolve()

        try:
            resolved.relative_to(self.project_root)
        except ValueError:
            raise PathTraversalError(
                f"Path escapes project root: {path} -> {resolved}"
            )

        return resolved

    def _log_suspicious_patterns(self, text: str) -> None:
        """Log suspicious patterns (for monitoring, not blocking)."""
        suspicious = [
            ("$(", "command substitution"),
            ("`", "backtick command"),
            ("&&", "command chaining"),
            (";", "command separator"),
        ]

        for pattern, description in suspicious:
            if pattern in text:
                logger.debug(
                    "Prompt contains '%s' (%s) - safe with exec mode",
                    pattern,
                    description,
                )
