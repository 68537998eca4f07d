"""Workflow orchestration: context, executor, permissions and built-in workflows.

Importing this package registers the built-in workflows
(bug-hunt, feature-design, parallel-review, pre-commit-validate,
validate-last-commit).
"""

from multi_ai_workflows.workflows.audit import AuditTrail
from multi_ai_workflows.workflows.context import ContextMetadata, WorkflowContext
from multi_ai_workflows.workflows.git import CommitInfo, GitHelper
from multi_ai_workflows.workflows.executor import (
    WorkflowDefinition,
    WorkflowExecutor,
    WorkflowParams,
    WorkflowServices,
    get_workflow,
    list_workflows,
    register_workflow,
)
from multi_ai_workflows.workflows.model_selector import (
    BackendSelector,
    BackendStats,
    TaskCharacteristics,
    create_task_characteristics,
)
from multi_ai_workflows.workflows.permissions import (
    AutonomyLevel,
    Operation,
    PermissionDeniedError,
    PermissionManager,
)
from multi_ai_workflows.workflows.report import format_workflow_output

# Built-in workflows register themselves on import
from multi_ai_workflows.workflows import (  # noqa: F401
    bug_hunt,
    commit_validation,
    feature_design,
    parallel_review,
)

__all__ = [
    # Context
    "ContextMetadata",
    "WorkflowContext",
    # Git
    "CommitInfo",
    "GitHelper",
    # Execution
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowParams",
    "WorkflowServices",
    "get_workflow",
    "list_workflows",
    "register_workflow",
    # Permissions
    "AutonomyLevel",
    "Operation",
    "PermissionDeniedError",
    "PermissionManager",
    # Selection and audit
    "AuditTrail",
    "BackendSelector",
    "BackendStats",
    "TaskCharacteristics",
    "create_task_characteristics",
    # Reports
    "format_workflow_output",
]
