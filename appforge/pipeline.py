"""AppForge entry points and command-line interface.

Usage::

    appforge build "a tkinter color picker tool"
    appforge build "disk usage report" -f powershell -n disk-report --no-package
    appforge list
    appforge remove disk-report
    appforge memory powershell --clear
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

from rich.markup import escape
from rich.table import Table

from .builder.orchestrator import BuildOrchestrator
from .config import Config
from .errors import InvalidRequestError
from .memory.constraints import ConstraintMemory
from .memory.database import Database
from .memory.records import BuildRecordStore
from .models import BuildRecord, BuildRequest, BuildStatus, Framework
from .utils import console, print_error, print_success, print_warning


async def build_app(
    prompt: str,
    framework: Optional[str] = None,
    name: Optional[str] = None,
    no_branding: bool = False,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    max_retries: Optional[int] = None,
    config: Optional[Config] = None,
    *,
    orchestrator: Optional[BuildOrchestrator] = None,
) -> BuildRecord:
    """Build an app from *prompt* and return its terminal build record.

    Raises:
        InvalidRequestError: If the prompt is empty or whitespace.
    """
    request = BuildRequest(
        prompt=prompt or "",
        framework_override=framework,
        name=name,
        no_branding=no_branding,
        provider=provider,
        model=model,
        max_retries=max_retries,
    )
    if not request.is_valid():
        raise InvalidRequestError("The prompt must not be empty.")

    owned = orchestrator is None
    if owned:
        orchestrator = BuildOrchestrator(config or Config.from_env())
    try:
        outcome = await orchestrator.build(request)
    finally:
        if owned:
            orchestrator.database.close()
    return outcome.record


def _database(config: Optional[Config]) -> Database:
    return Database.from_config(config or Config.from_env())


def list_builds(config: Optional[Config] = None) -> list[BuildRecord]:
    """Every build record, newest first."""
    db = _database(config)
    try:
        return BuildRecordStore(db).list()
    finally:
        db.close()


def remove_build(name: str, config: Optional[Config] = None) -> int:
    """Delete every record named *name*. Returns the number removed."""
    db = _database(config)
    try:
        return BuildRecordStore(db).remove(name)
    finally:
        db.close()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _print_builds(records: list[BuildRecord]) -> None:
    if not records:
        console.print("[dim]No builds recorded.[/dim]")
        return
    table = Table(title="Builds", show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Framework", style="cyan")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Created")
    table.add_column("Output", overflow="fold")
    for record in records:
        status = (
            "[green]completed[/green]" if record.status is BuildStatus.COMPLETED else "[red]failed[/red]"
        )
        table.add_row(
            str(record.id or ""),
            escape(record.name),
            record.framework,
            status,
            f"{record.build_time:.1f}s",
            record.created_at[:19].replace("T", " "),
            escape(record.exe_path or record.source_dir or "-"),
        )
    console.print(table)


def _print_constraints(memory: ConstraintMemory, framework: Optional[str]) -> None:
    constraints = memory.list_constraints(framework)
    if not constraints:
        console.print("[dim]No constraints learned yet.[/dim]")
        return
    table = Table(title="Constraint memory", show_header=True, header_style="bold cyan")
    table.add_column("Framework", style="cyan")
    table.add_column("Hits", justify="right")
    table.add_column("Constraint", overflow="fold")
    for constraint in constraints:
        table.add_row(constraint.framework, str(constraint.hit_count), escape(constraint.constraint_text))
    console.print(table)


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``appforge`` / ``python -m appforge.pipeline``."""
    import argparse

    frameworks = [f.value for f in Framework]
    parser = argparse.ArgumentParser(
        prog="appforge",
        description="AppForge -- turn a prompt into a validated, packaged app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  appforge build "a tkinter color picker tool"\n'
            '  appforge build "service status report" -f powershell -n svc-report\n'
            "  appforge list\n"
        ),
    )
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build an app from a prompt")
    build.add_argument("prompt", help="Natural-language description of the app")
    build.add_argument("--framework", "-f", default=None, help=f"One of: {', '.join(frameworks)}")
    build.add_argument("--name", "-n", default=None, help="App name (derived from the prompt if omitted)")
    build.add_argument("--no-branding", action="store_true", help="Skip the attribution marker")
    build.add_argument("--provider", default=None, help="anthropic, openai or ollama")
    build.add_argument("--model", default=None, help="Model identifier")
    build.add_argument("--max-retries", type=int, default=None, help="Repair regenerations before giving up")
    build.add_argument("--no-package", action="store_true", help="Stop after writing the sources")

    sub.add_parser("list", help="List recorded builds")

    remove = sub.add_parser("remove", help="Delete build records by name")
    remove.add_argument("name")

    memory = sub.add_parser("memory", help="Show or clear learned constraints")
    memory.add_argument("framework", nargs="?", default=None, choices=frameworks)
    memory.add_argument("--clear", action="store_true", help="Delete the listed constraints")

    args = parser.parse_args(argv)
    config = Config.from_env()

    if args.command == "build":
        if args.max_retries is not None and args.max_retries < 0:
            print_error("--max-retries must be >= 0")
            sys.exit(2)
        if args.no_package:
            config.build.package = False
        try:
            record = asyncio.run(
                build_app(
                    args.prompt,
                    framework=args.framework,
                    name=args.name,
                    no_branding=args.no_branding,
                    provider=args.provider,
                    model=args.model,
                    max_retries=args.max_retries,
                    config=config,
                )
            )
        except InvalidRequestError as exc:
            print_error(f"Error: {exc}")
            sys.exit(2)
        if record is None or record.status is not BuildStatus.COMPLETED:
            sys.exit(1)

    elif args.command == "list":
        _print_builds(list_builds(config))

    elif args.command == "remove":
        removed = remove_build(args.name, config)
        if removed:
            print_success(f"Removed {removed} record(s) named '{args.name}'.")
        else:
            print_warning(f"No records named '{args.name}'.")

    elif args.command == "memory":
        db = _database(config)
        try:
            store = ConstraintMemory(db)
            if args.clear:
                removed = store.clear(args.framework)
                print_success(f"Cleared {removed} constraint(s).")
            else:
                _print_constraints(store, args.framework)
        finally:
            db.close()


if __name__ == "__main__":
    main()
