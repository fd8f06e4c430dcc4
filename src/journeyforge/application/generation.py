"""
GenerationPair: atomic render-validate-write transaction.

Couples the code generator with the validator. A file is written only when
the merged source passes every guard, so an invalid artifact never reaches
the test runner.
"""

import logging
from pathlib import Path

from journeyforge.codegen.generator import (
    CONFTEST_TEMPLATE,
    GeneratedFile,
    GeneratedModule,
    PlaywrightGenerator,
)
from journeyforge.domain.exceptions import ValidationFailure
from journeyforge.domain.interfaces import GuardInterface
from journeyforge.domain.models import GuardResult, IRProgram, journey_slug
from journeyforge.guards import default_validator
from journeyforge.healing.loop import ModuleWriterInterface
from journeyforge.infrastructure.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)


class GenerationPair(ModuleWriterInterface):
    """
    Render an IR program, merge it into the existing file, validate, write.

    Args:
        tests_dir: Directory receiving ``test_<journey>.py`` modules
        generator: Code generator (default PlaywrightGenerator)
        guard: Validator applied to the merged source (default rule set)
    """

    def __init__(
        self,
        tests_dir: Path,
        generator: PlaywrightGenerator | None = None,
        guard: GuardInterface | None = None,
    ):
        self.tests_dir = tests_dir
        self._generator = generator or PlaywrightGenerator()
        self._guard = guard or default_validator()

    @property
    def guard(self) -> GuardInterface:
        """Access the guard (read-only)."""
        return self._guard

    def test_path(self, journey_id: str) -> Path:
        return self.tests_dir / f"test_{journey_slug(journey_id)}.py"

    def render(self, program: IRProgram) -> GeneratedModule:
        """Render ``program`` merged into the current file content, without writing."""
        path = self.test_path(program.journey_id)
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        try:
            return self._generator.render(program, existing)
        except ValidationFailure as e:
            raise ValidationFailure(e.violations, path=str(path)) from e

    def validate(self, module: GeneratedModule, program: IRProgram) -> GuardResult:
        return self._guard.validate(module.source, program)

    def execute(self, program: IRProgram) -> GeneratedFile:
        """
        Run the transaction for one program.

        Returns:
            GeneratedFile describing the written (or unchanged) module

        Raises:
            ValidationFailure: If the merged source violates any rule; the
                file on disk is left untouched
        """
        path = self.test_path(program.journey_id)
        module = self.render(program)
        for warning in module.warnings:
            logger.warning("%s: %s", path, warning)

        result = self.validate(module, program)
        if not result.passed:
            logger.error("Validation failed for %s:\n%s", path, result.feedback)
            raise ValidationFailure(list(result.violations), path=str(path))

        changed = not path.exists() or path.read_text(encoding="utf-8") != module.source
        if changed:
            atomic_write_text(path, module.source)
            logger.info("Wrote %s", path)
        else:
            logger.debug("%s unchanged", path)
        return GeneratedFile(program.journey_id, path, module, changed)

    def ensure_conftest(self) -> Path:
        """Write the marker-registering conftest.py once; never overwrite."""
        path = self.tests_dir / "conftest.py"
        if not path.exists():
            atomic_write_text(path, CONFTEST_TEMPLATE)
        return path
