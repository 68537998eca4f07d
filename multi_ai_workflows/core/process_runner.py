"""Async subprocess execution for backend CLIs."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Callable

from multi_ai_workflows.core.errors import CommandExecutionError, CommandTimeoutError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

DEFAULT_TIMEOUT = 600.0  # 10 minutes
CHUNK_SIZE = 4096


# Where the droid and cursor-agent install scripts put their binaries
USER_BIN_DIRS = (Path.home() / ".local" / "bin",)


def resolve_executable(name: str, extra_dirs: tuple[Path, ...] = USER_BIN_DIRS) -> str | None:
    """
    Locate a backend CLI on PATH or in its usual install location.

    Lookup order: PATH, then the npm ``.cmd`` shim on Windows (global npm
    prefix under %APPDATA%), then ``extra_dirs``. Absolute paths and paths
    with a directory component are returned unchanged when they exist.

    Args:
        name: Executable name (e.g. "gemini", "acli", "droid") or a path.
        extra_dirs: Additional directories searched last.

    Returns:
        Full path to the executable, or None if not found.
    """
    if os.path.dirname(name):
        return name if Path(name).is_file() else None

    found = shutil.which(name)
    if found:
        return found

    if sys.platform == "win32":
        found = shutil.which(f"{name}.cmd")
        if found:
            return found
        npm_shim = Path(os.environ.get("APPDATA", "")) / "npm" / f"{name}.cmd"
        if npm_shim.is_file():
            return str(npm_shim)

    for directory in extra_dirs:
        candidate = directory / name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)

    return None


class ProcessRunner:
    """
    Run an external command and return its stdout.

    Uses create_subprocess_exec() with an argv list, never a shell, so
    prompts containing shell metacharacters are passed through literally.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        executable: str,
        args: list[str],
        *,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
        cwd: str | None = None,
    ) -> str:
        """
        Execute a command, streaming stdout chunks to on_progress.

        Args:
            executable: Command name or path.
            args: Command arguments.
            timeout: Seconds before the process is killed.
            on_progress: Receives decoded stdout chunks as they arrive.
            cwd: Working directory for the process.

        Returns:
            Captured stdout, stripped.

        Raises:
            CommandTimeoutError: If the process exceeds the timeout.
            CommandExecutionError: If the process cannot start or exits non-zero.
        """
        timeout = timeout or self.default_timeout
        resolved = resolve_executable(executable) or executable
        start_time = time.monotonic()

        logger.debug("Executing %s with %d args (timeout %.0fs)", executable, len(args), timeout)

        try:
            process = await asyncio.create_subprocess_exec(
                resolved,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            logger.error("Failed to start %s: %s", executable, e)
            raise CommandExecutionError(f"Failed to start {executable}: {e}") from e

        stdout_chunks: list[str] = []

        async def read_stdout() -> None:
            assert process.stdout is not None
            while True:
                chunk = await process.stdout.read(CHUNK_SIZE)
                if not chunk:
                    break
                text = chunk.decode("utf-8", errors="replace")
                stdout_chunks.append(text)
                if on_progress:
                    try:
                        on_progress(text)
                    except Exception as e:
                        logger.debug("Progress callback raised: %s", e)

        async def read_stderr() -> bytes:
            assert process.stderr is not None
            return await process.stderr.read()

        try:
            _, stderr_bytes = await asyncio.wait_for(
                asyncio.gather(read_stdout(), read_stderr()),
                timeout=timeout,
            )
            await process.wait()
        except asyncio.TimeoutError:
            duration = time.monotonic() - start_time
            logger.warning("%s timed out after %.1f seconds", executable, duration)
            raise CommandTimeoutError(timeout) from None
        finally:
            # Timeout, cancellation or any other exit must not leave the child running
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        stdout = "".join(stdout_chunks)
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        duration = time.monotonic() - start_time

        if process.returncode != 0:
            message = stderr.strip() or stdout.strip() or f"{executable} exited with code {process.returncode}"
            logger.warning(
                "%s exited with code %s after %.1fs", executable, process.returncode, duration
            )
            raise CommandExecutionError(message, exit_code=process.returncode)

        logger.debug("%s completed in %.1fs", executable, duration)
        return stdout.strip()
