"""Rule-based backend selection.

Picks a backend from task characteristics:

1. Architectural tasks -> gemini
2. Code generation (not speed-critical) -> droid
3. Debugging, security or speed-critical tasks -> cursor
4. Everything else -> cursor

Selections and usage are recorded on the audit trail, best effort.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, UTC
from typing import Any, Literal

from multi_ai_workflows.backends import Backend
from multi_ai_workflows.workflows.audit import AuditTrail

logger = logging.getLogger(__name__)

Complexity = Literal["low", "medium", "high"]
Domain = Literal["security", "performance", "architecture", "debugging", "general"]

# Candidates for diversified parallel analysis, in preference order
PARALLEL_CANDIDATES = [Backend.CURSOR.value, Backend.GEMINI.value, Backend.DROID.value]


@dataclass
class TaskCharacteristics:
    """What a task needs from a backend."""

    complexity: Complexity = "medium"
    token_budget: int = 30000
    requires_architectural_thinking: bool = False
    requires_code_generation: bool = False
    requires_speed: bool = False
    requires_creativity: bool = False
    domain: Domain = "general"


WORKFLOW_TASK_DEFAULTS: dict[str, TaskCharacteristics] = {
    "parallel-review": TaskCharacteristics(
        complexity="high",
        token_budget=50000,
        requires_architectural_thinking=True,
        domain="architecture",
    ),
    "pre-commit-validate": TaskCharacteristics(
        complexity="medium",
        token_budget=30000,
        requires_speed=True,
        domain="security",
    ),
    "bug-hunt": TaskCharacteristics(
        complexity="high",
        token_budget=40000,
        domain="debugging",
    ),
    "feature-design": TaskCharacteristics(
        complexity="high",
        token_budget=60000,
        requires_architectural_thinking=True,
        requires_code_generation=True,
        requires_creativity=True,
        domain="architecture",
    ),
    "validate-last-commit": TaskCharacteristics(
        complexity="medium",
        token_budget=25000,
        requires_speed=True,
        domain="general",
    ),
}


def create_task_characteristics(workflow_name: str, **overrides: Any) -> TaskCharacteristics:
    """Default characteristics for a workflow, with field overrides applied."""
    base = WORKFLOW_TASK_DEFAULTS.get(workflow_name, TaskCharacteristics())
    return replace(base, **overrides)


@dataclass
class BackendStats:
    """Usage statistics for one backend."""

    backend: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    avg_response_time_ms: float = 0.0
    last_used: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def success_rate(self) -> float:
        """Fraction of successful calls (1.0 when nothing recorded)."""
        if self.total_calls == 0:
            return 1.0
        return self.successful_calls / self.total_calls

    def record(self, success: bool, response_time_ms: float) -> None:
        self.total_calls += 1
        if success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1
        # Running average
        self.avg_response_time_ms += (response_time_ms - self.avg_response_time_ms) / self.total_calls
        self.last_used = datetime.now(UTC)


class BackendSelector:
    """Choose backends for tasks and keep per-backend usage statistics."""

    def __init__(self, audit: AuditTrail | None = None, autonomy_level: str = "read-only") -> None:
        self.audit = audit
        self.autonomy_level = autonomy_level
        self.stats: dict[str, BackendStats] = {}

    async def select_optimal(
        self,
        task: TaskCharacteristics,
        allowed: list[str] | None = None,
    ) -> str:
        """
        Select the best backend for a task.

        Args:
            task: Task characteristics.
            allowed: Restrict the choice to these backends.

        Returns:
            Backend name.
        """
        if task.requires_architectural_thinking or task.domain == "architecture":
            choice, reason = Backend.GEMINI.value, "architectural task"
        elif task.requires_code_generation and not task.requires_speed:
            choice, reason = Backend.DROID.value, "implementation task"
        elif task.domain in ("debugging", "security") or task.requires_speed:
            choice, reason = Backend.CURSOR.value, "debugging/speed"
        else:
            choice, reason = Backend.CURSOR.value, "default fallback"

        if allowed and choice not in allowed:
            ranked = [b for b in PARALLEL_CANDIDATES if b in allowed] or list(allowed)
            logger.debug("%s not allowed, using %s", choice, ranked[0])
            choice, reason = ranked[0], f"{reason}, restricted to {', '.join(allowed)}"

        logger.info("Selected %s (%s)", choice, reason)
        await self._audit("model_selection", {"backend": choice, "reason": reason, "task": asdict(task)})
        return choice

    async def select_parallel(self, task: TaskCharacteristics, count: int = 2) -> list[str]:
        """
        Select up to count distinct backends with complementary strengths.

        The optimal backend comes first. Gemini is complemented with droid,
        droid and cursor with gemini; the third slot takes what remains.
        """
        if count < 1:
            return []

        selections = [await self.select_optimal(task, PARALLEL_CANDIDATES)]

        if count >= 2:
            remaining = [b for b in PARALLEL_CANDIDATES if b not in selections]
            preferred = Backend.DROID.value if selections[0] == Backend.GEMINI.value else Backend.GEMINI.value
            selections.append(preferred if preferred in remaining else remaining[0])

        if count >= 3:
            remaining = [b for b in PARALLEL_CANDIDATES if b not in selections]
            if remaining:
                selections.append(remaining[0])

        return selections[:count]

    async def record_usage(
        self,
        backend: str,
        task: TaskCharacteristics,
        success: bool,
        response_time_ms: float,
    ) -> None:
        """Record the outcome of one backend call."""
        stats = self.stats.setdefault(backend, BackendStats(backend=backend))
        stats.record(success, response_time_ms)
        await self._audit(
            "backend_usage",
            {
                "backend": backend,
                "success": success,
                "response_time_ms": round(response_time_ms),
                "task": asdict(task),
            },
        )

    def get_stats(self, backend: str) -> BackendStats | None:
        return self.stats.get(backend)

    def all_stats(self) -> list[BackendStats]:
        return list(self.stats.values())

    def recommendations(self) -> str:
        """Markdown summary of usage, most successful backend first."""
        if not self.stats:
            return "No backend usage data available yet."

        lines = ["# Backend Usage Statistics", ""]
        for stat in sorted(self.stats.values(), key=lambda s: s.successful_calls, reverse=True):
            lines.extend([
                f"## {stat.backend}",
                f"- Total Calls: {stat.total_calls}",
                f"- Success Rate: {stat.success_rate * 100:.1f}%",
                f"- Avg Response Time: {stat.avg_response_time_ms:.0f}ms",
                f"- Last Used: {stat.last_used.isoformat()}",
                "",
            ])
        return "\n".join(lines)

    async def _audit(self, operation: str, details: dict[str, Any]) -> None:
        if self.audit is not None:
            await self.audit.log(operation, self.autonomy_level, details)
