"""
Application layer: orchestration of the pipeline commands.
"""

from journeyforge.application.generation import GeneratedFile, GenerationPair
from journeyforge.application.pipeline import CommandResult, PipelineService, RunSummary

__all__ = [
    "GenerationPair",
    "GeneratedFile",
    "PipelineService",
    "CommandResult",
    "RunSummary",
]
