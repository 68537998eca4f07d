"""Autonomy-level permission gate for workflow steps.

Levels are cumulative: each level allows everything the level below allows.

    read-only: read files and inspect git state
    low:       modify local files
    medium:    local git operations, dependencies, builds, tests
    high:      operations with external impact (push, publish, deploy)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class AutonomyLevel(str, Enum):
    """Permission tier of a workflow run."""

    READ_ONLY = "read-only"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Operation(str, Enum):
    """Operations a workflow step may request, grouped by risk."""

    # Read-only
    READ_FILE = "read_file"
    LIST_DIRECTORY = "list_directory"
    GIT_STATUS = "git_status"
    GIT_DIFF = "git_diff"
    GIT_LOG = "git_log"

    # Local file changes
    WRITE_FILE = "write_file"
    CREATE_FILE = "create_file"
    DELETE_FILE = "delete_file"
    MODIFY_FILE = "modify_file"

    # Local git, dependencies, build
    GIT_COMMIT = "git_commit"
    GIT_BRANCH = "git_branch"
    GIT_CHECKOUT = "git_checkout"
    GIT_MERGE = "git_merge"
    INSTALL_DEPENDENCIES = "install_dependencies"
    RUN_BUILD = "run_build"
    RUN_TESTS = "run_tests"

    # External impact
    GIT_PUSH = "git_push"
    GIT_FORCE_PUSH = "git_force_push"
    PUBLISH = "publish"
    DEPLOY = "deploy"
    DELETE_BRANCH_REMOTE = "delete_branch_remote"


_READ_ONLY_OPS = frozenset({
    Operation.READ_FILE,
    Operation.LIST_DIRECTORY,
    Operation.GIT_STATUS,
    Operation.GIT_DIFF,
    Operation.GIT_LOG,
})
_LOW_OPS = _READ_ONLY_OPS | {
    Operation.WRITE_FILE,
    Operation.CREATE_FILE,
    Operation.DELETE_FILE,
    Operation.MODIFY_FILE,
}
_MEDIUM_OPS = _LOW_OPS | {
    Operation.GIT_COMMIT,
    Operation.GIT_BRANCH,
    Operation.GIT_CHECKOUT,
    Operation.GIT_MERGE,
    Operation.INSTALL_DEPENDENCIES,
    Operation.RUN_BUILD,
    Operation.RUN_TESTS,
}
_HIGH_OPS = frozenset(Operation)

LEVEL_PERMISSIONS: dict[AutonomyLevel, frozenset[Operation]] = {
    AutonomyLevel.READ_ONLY: _READ_ONLY_OPS,
    AutonomyLevel.LOW: _LOW_OPS,
    AutonomyLevel.MEDIUM: _MEDIUM_OPS,
    AutonomyLevel.HIGH: _HIGH_OPS,
}

# Always confirmed through the callback, when one is configured
CRITICAL_OPERATIONS = frozenset({
    Operation.GIT_PUSH,
    Operation.GIT_FORCE_PUSH,
    Operation.PUBLISH,
    Operation.DEPLOY,
    Operation.DELETE_BRANCH_REMOTE,
})

LEVEL_DESCRIPTIONS = {
    AutonomyLevel.READ_ONLY: "Read only: can read files and git information",
    AutonomyLevel.LOW: "Low autonomy: can modify local files",
    AutonomyLevel.MEDIUM: "Medium autonomy: can run local git operations and manage dependencies",
    AutonomyLevel.HIGH: "High autonomy: can run operations with external impact (push, deploy)",
}

ConfirmationCallback = Callable[[Operation], Awaitable[bool]]


class PermissionDeniedError(Exception):
    """Operation not allowed at the current autonomy level (never retried)."""

    def __init__(
        self,
        operation: Operation,
        level: AutonomyLevel,
        context: str | None = None,
    ) -> None:
        message = f"Operation '{operation.value}' not allowed at level '{level.value}'"
        if context:
            message += f": {context}"
        super().__init__(message)
        self.operation = operation
        self.level = level
        self.context = context


class PermissionManager:
    """Gate operations by autonomy level."""

    def __init__(
        self,
        level: AutonomyLevel | str = AutonomyLevel.READ_ONLY,
        confirmation_callback: ConfirmationCallback | None = None,
    ) -> None:
        self.level = AutonomyLevel(level)
        self.confirmation_callback = confirmation_callback

    def is_allowed(self, operation: Operation) -> bool:
        return operation in LEVEL_PERMISSIONS[self.level]

    def requires_confirmation(self, operation: Operation) -> bool:
        return operation in CRITICAL_OPERATIONS

    async def request_permission(self, operation: Operation, context: str | None = None) -> None:
        """
        Check an operation before performing it.

        Args:
            operation: The operation about to run.
            context: Optional detail added to the denial message.

        Raises:
            PermissionDeniedError: If the level forbids the operation, or the
                confirmation callback declines a critical one.
        """
        if not self.is_allowed(operation):
            logger.warning("Denied %s at level %s", operation.value, self.level.value)
            raise PermissionDeniedError(operation, self.level, context)

        if self.requires_confirmation(operation) and self.confirmation_callback:
            confirmed = await self.confirmation_callback(operation)
            if not confirmed:
                logger.warning("Confirmation declined for %s", operation.value)
                raise PermissionDeniedError(operation, self.level, "User denied confirmation")

        logger.debug("Allowed %s at level %s", operation.value, self.level.value)

    def allowed_operations(self) -> list[Operation]:
        """Allowed operations in declaration order."""
        allowed = LEVEL_PERMISSIONS[self.level]
        return [op for op in Operation if op in allowed]

    def level_description(self) -> str:
        return LEVEL_DESCRIPTIONS[self.level]

    def permission_report(self) -> str:
        """Human-readable list of allowed and denied operations."""
        allowed = self.allowed_operations()
        denied = [op for op in Operation if op not in allowed]

        lines = [
            f"Autonomy Level: {self.level.value}",
            self.level_description(),
            "",
            f"Allowed Operations ({len(allowed)}):",
            *(f"  - {op.value}" for op in allowed),
            "",
            f"Denied Operations ({len(denied)}):",
            *(f"  - {op.value}" for op in denied),
        ]
        return "\n".join(lines)
