"""Shared fixtures for architecture tests."""

import os

import pytest
from pytestarch import (
    EvaluableArchitecture,
    LayeredArchitecture,
    get_evaluable_architecture,
)

COMPILER_PACKAGES = ["journey", "mapping", "ir", "codegen", "guards", "execution", "healing"]


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    """Build evaluable architecture from src/journeyforge."""
    src_dir = os.path.abspath(
        os.path.join(os.path.dirname(__file__), "..", "..", "src")
    )
    project_path = os.path.join(src_dir, "journeyforge")
    return get_evaluable_architecture(src_dir, project_path)


@pytest.fixture(scope="session")
def layers() -> LayeredArchitecture:
    """Define the layers of the compiler.

    PyTestArch resolves module names relative to the source root,
    so modules appear as 'src.journeyforge.domain', etc.
    """
    return (
        LayeredArchitecture()
        .layer("domain")
        .containing_modules(["src.journeyforge.domain"])
        .layer("compiler")
        .containing_modules([f"src.journeyforge.{name}" for name in COMPILER_PACKAGES])
        .layer("application")
        .containing_modules(["src.journeyforge.application"])
        .layer("infrastructure")
        .containing_modules(["src.journeyforge.infrastructure"])
        .layer("interface")
        .containing_modules(["src.journeyforge.cli", "src.journeyforge.console"])
    )
