"""Base class for backend adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from multi_ai_workflows.config.settings import BackendModels


class Backend(str, Enum):
    """Supported external AI backends."""

    QWEN = "qwen"
    GEMINI = "gemini"
    ROVODEV = "rovodev"
    CURSOR = "cursor"
    DROID = "droid"


@dataclass
class ExecutionRequest:
    """A single backend invocation request."""

    backend: str
    prompt: str
    model: str | None = None

    # qwen / gemini
    sandbox: bool = False
    approval_mode: str | None = None
    yolo: bool = False
    all_files: bool = False
    debug: bool = False

    # rovodev
    shadow: bool = False
    verbose: bool = False
    restore: bool = False

    # cursor / droid
    auto_approve: bool = False
    output_format: str | None = None
    cwd: str | None = None
    attachments: list[str] = field(default_factory=list)
    autonomy_level: str | None = None
    auto: str | None = None
    session_id: str | None = None
    skip_permissions_unsafe: bool = False


class BackendAdapter(ABC):
    """
    Abstract base class for backend adapters.

    An adapter knows the executable of one backend, its model tiers and how
    to turn an ExecutionRequest into an argv list. It never runs anything.
    """

    BACKEND: Backend
    EXECUTABLE: str

    def __init__(
        self,
        models: BackendModels | None = None,
        executable: str | None = None,
    ) -> None:
        self.models = models or BackendModels()
        self.executable = executable or self.EXECUTABLE

    @property
    def name(self) -> str:
        return self.BACKEND.value

    @property
    def primary_model(self) -> str | None:
        return self.models.primary

    @property
    def fallback_model(self) -> str | None:
        return self.models.fallback

    def effective_model(self, request: ExecutionRequest) -> str | None:
        """Model the request will actually run with."""
        return request.model or self.default_model

    @property
    def default_model(self) -> str | None:
        """Model used when the request names none (None lets the CLI decide)."""
        return None

    @abstractmethod
    def build_args(self, request: ExecutionRequest, model: str | None) -> list[str]:
        """
        Build CLI arguments for a request.

        Args:
            request: The execution request.
            model: Model to pass (already resolved by the caller).

        Returns:
            Argument list, excluding the executable.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(executable={self.executable!r})"
