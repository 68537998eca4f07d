"""Entry point for the multi-AI workflows CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from multi_ai_workflows.backends import ExecutionRequest, supported_backends
from multi_ai_workflows.config.settings import Settings, get_settings, load_settings_from_yaml
from multi_ai_workflows.core.circuit_breaker import CircuitBreaker
from multi_ai_workflows.core.dispatcher import BackendDispatcher
from multi_ai_workflows.core.errors import DispatchError
from multi_ai_workflows.workflows import (
    AutonomyLevel,
    PermissionDeniedError,
    PermissionManager,
    WorkflowExecutor,
    list_workflows,
)

console = Console()


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="multi-ai",
        description="Multi-AI workflow orchestration",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML settings file",
    )
    parser.add_argument(
        "--project",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # run
    run_parser = subparsers.add_parser("run", help="Run a workflow")
    run_parser.add_argument("workflow", help="Workflow name (see 'workflows')")
    run_parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Workflow parameter; values are parsed as YAML (repeatable)",
    )
    run_parser.add_argument(
        "--params-file",
        type=Path,
        help="YAML or JSON file with workflow parameters",
    )

    # ask
    ask_parser = subparsers.add_parser("ask", help="Send one prompt to a backend")
    ask_parser.add_argument("backend", choices=supported_backends())
    ask_parser.add_argument("-p", "--prompt", required=True, help="Prompt text")
    ask_parser.add_argument("--model", help="Model override")

    # workflows
    subparsers.add_parser("workflows", help="List available workflows")

    # permissions
    perm_parser = subparsers.add_parser("permissions", help="Show what an autonomy level allows")
    perm_parser.add_argument(
        "--level",
        choices=[level.value for level in AutonomyLevel],
        default=AutonomyLevel.READ_ONLY.value,
    )

    return parser.parse_args(argv)


def parse_params(pairs: list[str], params_file: Path | None = None) -> dict[str, Any]:
    """
    Build workflow parameters from a file and KEY=VALUE pairs.

    Pairs override file values. Values are YAML-parsed, so `[a.py, b.py]`
    becomes a list and `3` an int.
    """
    params: dict[str, Any] = {}
    if params_file:
        with open(params_file, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{params_file} must contain a mapping of parameters")
        params.update(loaded)

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid parameter '{pair}', expected KEY=VALUE")
        params[key.strip().replace("-", "_")] = yaml.safe_load(value) if value else ""
    return params


def build_executor(settings: Settings, project: Path) -> WorkflowExecutor:
    breaker = CircuitBreaker(
        failure_threshold=settings.resilience.failure_threshold,
        reset_timeout=settings.resilience.reset_timeout,
    )
    dispatcher = BackendDispatcher(breaker, settings=settings, project_root=project)
    return WorkflowExecutor(dispatcher, settings=settings, project_root=project)


async def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Run a workflow and print its report."""
    try:
        params = parse_params(args.param, args.params_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 2

    executor = build_executor(settings, args.project)

    def on_progress(message: str) -> None:
        if args.verbose:
            console.print(f"[dim]{message}[/dim]")

    try:
        with console.status(f"Running {args.workflow}..."):
            report = await executor.execute(args.workflow, params, on_progress)
    except (DispatchError, PermissionDeniedError) as e:
        console.print(f"[red]✗[/red] {args.workflow} failed: {e}")
        if args.debug:
            console.print_exception()
        return 1

    console.print(Markdown(report))
    return 0


async def cmd_ask(args: argparse.Namespace, settings: Settings) -> int:
    """Send a single prompt to a backend."""
    executor = build_executor(settings, args.project)
    request = ExecutionRequest(backend=args.backend, prompt=args.prompt, model=args.model)

    try:
        with console.status(f"Asking {args.backend}..."):
            output = await executor.dispatcher.execute(request)
    except DispatchError as e:
        console.print(f"[red]✗[/red] {e}")
        return 1

    console.print(Markdown(output))
    return 0


def cmd_workflows() -> int:
    """List registered workflows."""
    table = Table(title="Workflows")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    for definition in list_workflows():
        table.add_row(definition.name, definition.description)
    console.print(table)
    return 0


def cmd_permissions(args: argparse.Namespace) -> int:
    """Print the permission report for an autonomy level."""
    console.print(PermissionManager(args.level).permission_report())
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, debug=args.debug)

    settings = load_settings_from_yaml(args.config) if args.config else get_settings()

    if args.command == "run":
        return await cmd_run(args, settings)
    elif args.command == "ask":
        return await cmd_ask(args, settings)
    elif args.command == "workflows":
        return cmd_workflows()
    elif args.command == "permissions":
        return cmd_permissions(args)
    else:
        console.print("Usage: python -m multi_ai_workflows run bug-hunt --param symptoms='...'")
        console.print("       python -m multi_ai_workflows ask gemini -p 'Your prompt'")
        console.print("       python -m multi_ai_workflows workflows")
        return 0


def cli_main() -> None:
    """CLI entry point (synchronous wrapper)."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli_main()
