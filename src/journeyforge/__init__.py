"""
journeyforge: compile Journey documents into Playwright tests.

A Journey is a Markdown document describing a user flow. journeyforge
parses it, maps each step to IR primitives, generates a validated pytest
module with managed blocks, runs it, classifies failures and heals them
within strict bounds, checkpointing pipeline state after every command.

Example:
    from pathlib import Path
    from journeyforge import PipelineService, load_config

    service = PipelineService(load_config(), Path.cwd())
    service.analyze()
    service.plan()
    service.generate()
    summary = service.run()
"""

from journeyforge.application.generation import GenerationPair
from journeyforge.application.pipeline import CommandResult, PipelineService, RunSummary
from journeyforge.config import JourneyForgeConfig, load_config
from journeyforge.domain.exceptions import JourneyForgeError
from journeyforge.domain.models import ExecutionResult, IRProgram, JourneyDocument
from journeyforge.domain.pipeline import PipelineStage, PipelineState
from journeyforge.journey.parser import parse_journey, parse_journey_file

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "PipelineService",
    "CommandResult",
    "RunSummary",
    "GenerationPair",
    "JourneyForgeConfig",
    "load_config",
    "JourneyForgeError",
    "JourneyDocument",
    "IRProgram",
    "ExecutionResult",
    "PipelineStage",
    "PipelineState",
    "parse_journey",
    "parse_journey_file",
]
