"""
Hexagonal Architecture Layer Rules.

Permanent tests enforcing dependency direction between layers:
- Domain must not access any other layer
- Nothing below the CLI may access the CLI
- Infrastructure must not access Application
- The compiler packages must not access Application or Infrastructure

These rules use PyTestArch's LayerRule API for declarative enforcement.
"""

import pytest
from pytestarch import LayerRule


def rule_for(layers, source: str):
    return LayerRule().based_on(layers).layers_that().are_named(source).should_not()


class TestLayerRules:
    """Permanent architecture rules enforcing hexagonal architecture."""

    @pytest.mark.parametrize("target", ["compiler", "application", "infrastructure", "interface"])
    def test_domain_is_pure(self, evaluable, layers, target):
        """Domain defines models and ports only."""
        rule = rule_for(layers, "domain").access_layers_that().are_named(target)
        rule.assert_applies(evaluable)

    @pytest.mark.parametrize("source", ["domain", "compiler", "application", "infrastructure"])
    def test_nothing_depends_on_the_cli(self, evaluable, layers, source):
        """Only the entry point renders output and maps exit codes."""
        rule = rule_for(layers, source).access_layers_that().are_named("interface")
        rule.assert_applies(evaluable)

    def test_infrastructure_does_not_access_application(self, evaluable, layers):
        """Adapters never orchestrate commands."""
        rule = rule_for(layers, "infrastructure").access_layers_that().are_named("application")
        rule.assert_applies(evaluable)

    @pytest.mark.parametrize("target", ["application", "infrastructure"])
    def test_compiler_does_not_access_outer_layers(self, evaluable, layers, target):
        """Parsing, mapping, generation, execution and healing see only ports."""
        rule = rule_for(layers, "compiler").access_layers_that().are_named(target)
        rule.assert_applies(evaluable)
