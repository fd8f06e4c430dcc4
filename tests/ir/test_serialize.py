"""Tests for IR and Journey serialization."""

import json

import pytest

from journeyforge.domain.models import (
    IRProgram,
    JourneyDocument,
    PrimitiveKind,
    ValueKind,
)
from journeyforge.ir.serialize import (
    document_from_dict,
    document_to_dict,
    primitive_from_dict,
    primitive_to_dict,
    program_from_dict,
    program_to_dict,
)


class TestPrimitiveDict:
    def test_empty_fields_are_omitted(self) -> None:
        data = primitive_from_dict({"kind": "navigate", "url": "/"})
        assert primitive_to_dict(data) == {"kind": "navigate", "url": "/", "origin": "builtin"}

    def test_plain_string_value_is_interpreted(self) -> None:
        primitive = primitive_from_dict(
            {
                "kind": "fill",
                "locator": {"strategy": "label", "value": "Email"},
                "value": "{{email}}",
            }
        )
        assert primitive.value.kind is ValueKind.CONTEXTUAL

    def test_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            primitive_from_dict({"kind": "teleport"})

    def test_blocked_without_reason(self) -> None:
        with pytest.raises(ValueError, match="non-empty reason"):
            primitive_from_dict({"kind": "blocked"})


class TestProgramDict:
    def test_program_survives_json(self, sign_in_program: IRProgram) -> None:
        data = json.loads(json.dumps(program_to_dict(sign_in_program)))
        assert program_from_dict(data) == sign_in_program

    def test_blocked_records_keep_reason(self, blocked_program: IRProgram) -> None:
        data = program_to_dict(blocked_program)
        assert data["blocked"][0]["reason"].startswith("no pattern matched")
        restored = program_from_dict(data)
        assert restored.find_step("S2").primitives[0].kind is PrimitiveKind.BLOCKED

    def test_stats_are_written(self, submit_program: IRProgram) -> None:
        assert program_to_dict(submit_program)["stats"]["selector_debt"] == 1


class TestDocumentDict:
    def test_document_survives_json(self, sign_in_document: JourneyDocument) -> None:
        data = json.loads(json.dumps(document_to_dict(sign_in_document)))
        assert document_from_dict(data) == sign_in_document
