"""Test fixtures for multi-AI workflows."""

from __future__ import annotations

from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
import shutil
import tempfile

import pytest

from multi_ai_workflows.config.settings import ResilienceConfig, Settings
from multi_ai_workflows.core.circuit_breaker import CircuitBreaker
from multi_ai_workflows.core.dispatcher import BackendDispatcher
from multi_ai_workflows.workflows.audit import AuditTrail
from multi_ai_workflows.workflows.executor import WorkflowExecutor


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_project_dir() -> Generator[Path, None, None]:
    """Create a temporary project directory."""
    temp_dir = tempfile.mkdtemp(prefix="multi_ai_test_")
    yield Path(temp_dir).resolve()
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings with instant step retries."""
    return Settings(
        resilience=ResilienceConfig(step_retry_min_wait=0.0, step_retry_max_wait=0.0),
    )


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=3, reset_timeout=300.0, clock=clock)


@pytest.fixture
def runner() -> MagicMock:
    """Process runner mock; set runner.run.side_effect / return_value per test."""
    mock = MagicMock()
    mock.run = AsyncMock(return_value="ok")
    return mock


@pytest.fixture
def dispatcher(
    breaker: CircuitBreaker,
    runner: MagicMock,
    settings: Settings,
    temp_project_dir: Path,
) -> BackendDispatcher:
    return BackendDispatcher(breaker, runner=runner, settings=settings, project_root=temp_project_dir)


@pytest.fixture
def audit(temp_project_dir: Path) -> AuditTrail:
    return AuditTrail(temp_project_dir / ".multi_ai" / "audit.jsonl")


@pytest.fixture
def executor(
    dispatcher: BackendDispatcher,
    settings: Settings,
    temp_project_dir: Path,
    audit: AuditTrail,
) -> WorkflowExecutor:
    return WorkflowExecutor(dispatcher, settings=settings, project_root=temp_project_dir, audit=audit)


@pytest.fixture
def project_with_sources(temp_project_dir: Path) -> Path:
    """Project with a small Python package whose modules import each other."""
    pkg = temp_project_dir / "app"
    pkg.mkdir()
    (pkg / "__init__.py").write_text("")
    (pkg / "service.py").write_text(
        "from .models import User\n"
        "from .utils import helpers\n"
        "\n"
        "def save(user):\n"
        "    return user.id\n"
    )
    (pkg / "models.py").write_text("class User:\n    id = 1\n")
    (pkg / "utils").mkdir()
    (pkg / "utils" / "__init__.py").write_text("")
    (pkg / "utils" / "helpers.py").write_text("def noop():\n    pass\n")
    return temp_project_dir
