"""
Multi-AI Workflows - Resilient orchestration of external AI coding CLIs

Shells out to Gemini, Qwen, Rovo Dev, Cursor Agent and Droid, chains the
calls into named workflows (bug-hunt, feature-design, parallel-review) and
aggregates their outputs into markdown reports.
"""

__version__ = "0.1.0"

from multi_ai_workflows.core.circuit_breaker import CircuitBreaker
from multi_ai_workflows.core.dispatcher import BackendDispatcher
from multi_ai_workflows.workflows.context import WorkflowContext
from multi_ai_workflows.workflows.executor import WorkflowExecutor

__all__ = [
    "BackendDispatcher",
    "CircuitBreaker",
    "WorkflowContext",
    "WorkflowExecutor",
]
