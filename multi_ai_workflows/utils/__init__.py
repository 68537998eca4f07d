"""Utility module for prompt sanitization and text helpers."""

from multi_ai_workflows.utils.sanitization import PathTraversalError, PromptSanitizer


def truncate_with_marker(text: str, max_length: int, marker: str = "[...truncated]") -> str:
    """
    Truncate text and add marker if it exceeds max_length.

    Args:
        text: The text to truncate.
        max_length: Maximum length before truncation.
        marker: Marker to append when truncated.

    Returns:
        Original text if within limit, otherwise truncated with marker.
    """
    if len(text) <= max_length:
        return text
    truncate_at = max_length - len(marker)
    return text[:truncate_at] + marker


__all__ = [
    "PathTraversalError",
    "PromptSanitizer",
    "truncate_with_marker",
]
