"""Backend adapters for the external AI command-line tools.

Each backend has a different invocation shape:

    Qwen:     qwen [flags] -p PROMPT. Has primary/fallback model tiers.
    Gemini:   gemini [-m MODEL] [flags] -p PROMPT. Has primary/fallback tiers.
    Rovodev:  acli rovodev run [--shadow|--verbose|--restore|--yolo] PROMPT.
              Positional prompt, no model selection.
    Cursor:   cursor-agent -p PROMPT [--file F]... [--cwd D] [--auto-approve].
    Droid:    droid exec [--auto L] [--session-id S] [--file F]... PROMPT.
"""

from multi_ai_workflows.backends.base import Backend, BackendAdapter, ExecutionRequest
from multi_ai_workflows.backends.cursor import CursorAgentAdapter
from multi_ai_workflows.backends.droid import DroidAdapter
from multi_ai_workflows.backends.gemini import GeminiAdapter
from multi_ai_workflows.backends.qwen import QwenAdapter
from multi_ai_workflows.backends.rovodev import RovodevAdapter
from multi_ai_workflows.config.settings import Settings

__all__ = [
    # Base classes and types
    "Backend",
    "BackendAdapter",
    "ExecutionRequest",
    # Adapters
    "CursorAgentAdapter",
    "DroidAdapter",
    "GeminiAdapter",
    "QwenAdapter",
    "RovodevAdapter",
    # Factory functions
    "ADAPTER_CLASSES",
    "create_adapters",
    "supported_backends",
]

# Static routing table: backend name -> adapter class
ADAPTER_CLASSES: dict[str, type[BackendAdapter]] = {
    Backend.QWEN.value: QwenAdapter,
    Backend.GEMINI.value: GeminiAdapter,
    Backend.ROVODEV.value: RovodevAdapter,
    Backend.CURSOR.value: CursorAgentAdapter,
    Backend.DROID.value: DroidAdapter,
}


def supported_backends() -> list[str]:
    """Names of every routable backend."""
    return list(ADAPTER_CLASSES)


def create_adapters(settings: Settings) -> dict[str, BackendAdapter]:
    """
    Build one adapter per backend from settings.

    Args:
        settings: Settings supplying model tiers and executable overrides.

    Returns:
        Dictionary of backend name to adapter instance.
    """
    adapters: dict[str, BackendAdapter] = {}
    for name, adapter_class in ADAPTER_CLASSES.items():
        adapters[name] = adapter_class(
            models=settings.models.get_backend(name),
            executable=settings.get_executable(name, adapter_class.EXECUTABLE),
        )
    return adapters
