"""Intermediate representation: construction and JSON serialization."""

from journeyforge.ir.builder import COMPLETION_STEP_ID, build_program, compute_stats
from journeyforge.ir.serialize import (
    document_from_dict,
    document_to_dict,
    program_from_dict,
    program_to_dict,
)

__all__ = [
    "build_program",
    "compute_stats",
    "COMPLETION_STEP_ID",
    "program_to_dict",
    "program_from_dict",
    "document_to_dict",
    "document_from_dict",
]
