"""Rich console utilities for the journeyforge CLI."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from journeyforge.application.pipeline import CommandResult
    from journeyforge.domain.exceptions import JourneyForgeError

# Shared console instances
console = Console()
error_console = Console(stderr=True)


def print_header(title: str, subtitle: str | None = None) -> None:
    """Print a styled header panel."""
    content = Text(title, style="bold blue")
    if subtitle:
        content.append(f"\n{subtitle}", style="dim")
    console.print(Panel(content, expand=False))


def print_error(error: JourneyForgeError, hint: str | None = None) -> None:
    """Print a pipeline error to stderr: a panel plus its JSON form."""
    content = Text(f"ERROR: {error}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title=type(error).__name__, border_style="red"))
    error_console.print_json(json.dumps(error.to_dict(), default=str))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(message, title="Success", border_style="green"))


def print_failure(message: str, details: str | None = None) -> None:
    """Print failure message."""
    content = Text(message, style="bold red")
    if details:
        content.append(f"\n{details}", style="dim")
    console.print(Panel(content, title="Failed", border_style="red"))


def print_result(result: CommandResult) -> None:
    """Render a command result: a summary panel and, when present, details."""
    stage = result.stage.value
    if stage == "blocked":
        print_failure(result.message, f"stage: {stage}")
    else:
        print_success(f"{result.message}\n[dim]stage: {stage}[/dim]")

    if result.command == "run" or (result.command == "refine" and "statuses" in result.details):
        print_run_table(result.details)
    elif result.command == "plan" and result.details:
        table = Table(title="Plan")
        table.add_column("Journey", style="cyan")
        table.add_column("Steps", justify="right")
        table.add_column("Blocked", justify="right")
        table.add_column("Selector debt", justify="right")
        for journey_id, info in result.details.items():
            blocked = info["blocked"]
            table.add_row(
                journey_id,
                str(info["steps"]),
                Text(str(blocked), style="red" if blocked else "green"),
                str(info["selector_debt"]),
            )
        console.print(table)


def print_run_table(details: dict[str, Any]) -> None:
    """Per-Journey outcome table plus failure category counts."""
    statuses = details.get("statuses", {})
    if statuses:
        table = Table(title="Results")
        table.add_column("Journey", style="cyan")
        table.add_column("Status")
        for journey_id, status in statuses.items():
            style = "green" if status == "passed" else "red"
            table.add_row(journey_id, Text(status, style=style))
        console.print(table)

    categories = {k: v for k, v in details.get("categories", {}).items() if v}
    if categories:
        table = Table(show_header=False, box=None)
        table.add_column("Category", style="cyan")
        table.add_column("Failures", justify="right")
        for category, count in categories.items():
            table.add_row(category, str(count))
        console.print(table)


def print_status(status: dict[str, Any]) -> None:
    """Print the pipeline status summary."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    stage_style = "red" if status["is_blocked"] else "bold"
    table.add_row("Stage", Text(status["stage"], style=stage_style))
    table.add_row("Revision", str(status["revision"]))
    if status["blocked_reason"]:
        table.add_row("Blocked", Text(status["blocked_reason"], style="red"))
    table.add_row("Journeys", ", ".join(status["journeys"]) or "-")
    table.add_row("Refinement attempts", str(status["refinement_attempts"]))
    console.print(Panel(table, title="Pipeline", expand=False))

    if status["results"]:
        print_run_table(status["results"])

    if status["history"]:
        history = Table(title="Recent commands")
        history.add_column("Timestamp", style="dim")
        history.add_column("Command")
        history.add_column("Stage")
        for entry in status["history"]:
            history.add_row(entry["timestamp"], entry["command"], entry["stage"])
        console.print(history)
