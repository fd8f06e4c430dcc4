"""
journeyforge command line interface.

    journeyforge analyze | plan | generate | run [--resume] | refine | status | clean

Every command exits 0 on success. Pipeline errors are rendered to stderr
(panel plus JSON) and exit 1; a refine that ends blocked exits 2.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar

import click

from journeyforge import __version__
from journeyforge.application.pipeline import CommandResult, PipelineService
from journeyforge.config import load_config
from journeyforge.console import (
    console,
    print_error,
    print_header,
    print_result,
    print_status,
)
from journeyforge.domain.exceptions import (
    ConcurrencyConflict,
    JourneyForgeError,
    StateTransitionError,
)
from journeyforge.domain.pipeline import PipelineStage
from journeyforge.logging_setup import setup_logging

EXIT_ERROR = 1
EXIT_BLOCKED = 2

HINTS: dict[type[JourneyForgeError], str] = {
    StateTransitionError: "run 'journeyforge status' to see the current stage",
    ConcurrencyConflict: "another command changed the pipeline; re-run this one",
}


def _hint(error: JourneyForgeError) -> str | None:
    for error_type, hint in HINTS.items():
        if isinstance(error, error_type):
            return hint
    return None


F = TypeVar("F", bound=Callable[..., Any])


def pipeline_command(func: F) -> F:
    """
    Decorator turning a ``(service, **kwargs) -> CommandResult`` function
    into a click command body with uniform error handling.
    """

    @click.pass_obj
    @wraps(func)
    def wrapper(obj: dict[str, Any], *args: Any, **kwargs: Any) -> Any:
        try:
            service = _service(obj)
            result = func(service, *args, **kwargs)
        except JourneyForgeError as e:
            print_error(e, _hint(e))
            sys.exit(EXIT_ERROR)
        if isinstance(result, CommandResult):
            if obj["json"]:
                console.print_json(json.dumps(result.to_dict(), default=str))
            else:
                print_result(result)
            if result.stage is PipelineStage.BLOCKED:
                sys.exit(EXIT_BLOCKED)
        return result

    return wrapper  # type: ignore[return-value]


def _service(obj: dict[str, Any]) -> PipelineService:
    workdir: Path = obj["workdir"]
    config = load_config(obj["config_path"], workdir)
    log_file = obj["log_file"] or config.log_file
    if log_file and not Path(log_file).is_absolute():
        log_file = str(workdir / log_file)
    setup_logging(log_file=log_file, verbose=obj["verbose"])
    return PipelineService(config, workdir)


@click.group()
@click.version_option(__version__, prog_name="journeyforge")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to journeyforge.json/.yaml (default: search the working directory)",
)
@click.option(
    "--workdir",
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
    help="Working directory (default: current directory)",
)
@click.option(
    "--log-file",
    default=None,
    type=click.Path(),
    help="Path to log file (overrides config)",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose (DEBUG) logging to console",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    workdir: Path,
    log_file: str | None,
    as_json: bool,
    verbose: bool,
) -> None:
    """Compile Journey documents into validated, self-healing Playwright tests."""
    ctx.obj = {
        "config_path": config_path,
        "workdir": workdir.resolve(),
        "log_file": log_file,
        "json": as_json,
        "verbose": verbose,
    }


@cli.command()
@pipeline_command
def analyze(service: PipelineService) -> CommandResult:
    """Parse Journey documents."""
    return service.analyze()


@cli.command()
@pipeline_command
def plan(service: PipelineService) -> CommandResult:
    """Map Journey steps to IR programs."""
    return service.plan()


@cli.command()
@pipeline_command
def generate(service: PipelineService) -> CommandResult:
    """Generate and validate test modules."""
    return service.generate()


@cli.command()
@click.option("--resume", is_flag=True, help="Reuse results from an interrupted run")
@pipeline_command
def run(service: PipelineService, resume: bool) -> CommandResult:
    """Execute generated tests and classify failures."""
    return service.run(resume=resume)


@cli.command()
@click.option(
    "--cancel",
    is_flag=True,
    help="Ask a running refine to stop at its next attempt",
)
@pipeline_command
def refine(service: PipelineService, cancel: bool) -> CommandResult | None:
    """Heal failing tests within bounded attempts."""
    if cancel:
        path = service.request_cancel()
        console.print(f"Cancellation requested ({path})")
        return None
    return service.refine()


@cli.command()
@click.pass_obj
def status(obj: dict[str, Any]) -> None:
    """Show pipeline stage, results and recent history."""
    try:
        summary = _service(obj).status()
    except JourneyForgeError as e:
        print_error(e, _hint(e))
        sys.exit(EXIT_ERROR)
    if obj["json"]:
        console.print_json(json.dumps(summary, default=str))
        return
    print_header("journeyforge", str(obj["workdir"]))
    print_status(summary)


@cli.command()
@pipeline_command
def clean(service: PipelineService) -> CommandResult:
    """Reset the pipeline to initial (generated tests are kept)."""
    return service.clean()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
