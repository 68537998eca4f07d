"""Read-only git access for workflows.

Every query runs `git` through the process runner (argv, no shell) in the
project root, after the matching permission check:

    status, current branch      -> GIT_STATUS
    staged diff, ref diff       -> GIT_DIFF
    commit details, history     -> GIT_LOG
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import logging

from multi_ai_workflows.core.errors import CommandExecutionError, GitError, InvalidRequestError
from multi_ai_workflows.core.process_runner import ProcessRunner
from multi_ai_workflows.workflows.permissions import Operation, PermissionManager

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 60.0
COMMIT_FORMAT = "%H|%an|%ad|%s"
DEFAULT_RECENT_COMMITS = 5


@dataclass
class CommitInfo:
    """One commit with its diff and touched files."""

    hash: str
    author: str
    date: str
    message: str
    files: list[str] = field(default_factory=list)
    diff: str = ""


def _check_ref(ref: str) -> str:
    """Reject refs that git would parse as options."""
    if not ref.strip() or ref.startswith("-"):
        raise InvalidRequestError(f"Invalid git ref: {ref!r}")
    return ref


class GitHelper:
    """Permission-checked git queries for one project."""

    def __init__(
        self,
        runner: ProcessRunner,
        permissions: PermissionManager,
        cwd: Path,
        timeout: float = GIT_TIMEOUT,
    ) -> None:
        self.runner = runner
        self.permissions = permissions
        self.cwd = cwd
        self.timeout = timeout

    async def is_repository(self) -> bool:
        try:
            await self._git("rev-parse", "--git-dir")
        except GitError:
            return False
        return True

    async def current_branch(self) -> str:
        await self._authorize(Operation.GIT_STATUS, "branch")
        return await self._git("branch", "--show-current")

    async def status(self) -> str:
        """Short status with branch header."""
        await self._authorize(Operation.GIT_STATUS, "status")
        return await self._git("status", "--short", "--branch")

    async def staged_diff(self) -> str:
        await self._authorize(Operation.GIT_DIFF, "staged changes")
        return await self._git("diff", "--cached")

    async def staged_files(self) -> list[str]:
        await self._authorize(Operation.GIT_DIFF, "staged files")
        return _lines(await self._git("diff", "--cached", "--name-only"))

    async def diff(self, from_ref: str, to_ref: str | None = None) -> str:
        """Diff between two refs (working tree when to_ref is omitted)."""
        args = ["diff", _check_ref(from_ref)]
        if to_ref:
            args.append(_check_ref(to_ref))
        await self._authorize(Operation.GIT_DIFF, " ".join(args[1:]))
        return await self._git(*args)

    async def commit_info(self, ref: str = "HEAD") -> CommitInfo:
        """
        Details of a single commit.

        Raises:
            GitError: If git fails or its output cannot be parsed.
            InvalidRequestError: If the ref looks like an option.
        """
        ref = _check_ref(ref)
        await self._authorize(Operation.GIT_LOG, ref)
        return await self._commit_info(ref)

    async def recent_commits(self, count: int = DEFAULT_RECENT_COMMITS) -> list[CommitInfo]:
        """The last count commits on the current branch, newest first."""
        await self._authorize(Operation.GIT_LOG, f"last {count} commits")
        hashes = _lines(await self._git("log", f"-{count}", "--format=%H"))
        return [await self._commit_info(commit) for commit in hashes]

    async def _commit_info(self, ref: str) -> CommitInfo:
        header = await self._git("show", "--no-patch", f"--format={COMMIT_FORMAT}", ref)
        parts = header.split("|", 3)
        if len(parts) != 4:
            raise GitError(f"Unexpected commit header for {ref}: {header!r}")
        commit_hash, author, date, message = parts

        diff = await self._git("show", "--format=", ref)
        files = _lines(await self._git("show", "--format=", "--name-only", ref))
        return CommitInfo(commit_hash, author, date, message, files, diff)

    async def _authorize(self, operation: Operation, context: str) -> None:
        await self.permissions.request_permission(operation, context)
        if not await self.is_repository():
            raise GitError(f"{self.cwd} is not a git repository")

    async def _git(self, *args: str) -> str:
        logger.debug("git %s", " ".join(args))
        try:
            return await self.runner.run("git", list(args), timeout=self.timeout, cwd=str(self.cwd))
        except CommandExecutionError as e:
            raise GitError(f"git {args[0]} failed: {e}") from e


def _lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]
