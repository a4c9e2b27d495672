"""Tests for operation contracts and payload parsing."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from study_editor.errors import ErrorCode, InvalidOperation, ValidationFailed
from study_editor.models.image import FlatLineStyle, LineWeight
from study_editor.models.operations import (
    AddSection,
    EditSection,
    ModificationRequest,
    OperationType,
    RegenerateImage,
    RemoveSection,
    ReorderSections,
    parse_operation,
)
from study_editor.models.section import SectionDraft, SectionType


class TestParseOperation:
    """Test conversion of raw payloads into typed operations."""

    def test_parses_add_section(self) -> None:
        """Build an AddSection with a nested section draft."""
        op = parse_operation(
            {
                "type": "add_section",
                "section": {"type": "heading", "content": "Intro"},
                "position": 0,
            }
        )

        assert isinstance(op, AddSection)
        assert op.section.type == SectionType.HEADING
        assert op.section.dependencies == []
        assert op.position == 0

    def test_parses_reorder(self) -> None:
        """Build a ReorderSections from an id list."""
        op = parse_operation({"type": "reorder_sections", "section_ids": ["s2", "s1"]})

        assert isinstance(op, ReorderSections)
        assert op.section_ids == ["s2", "s1"]

    def test_unknown_type_raises_invalid_operation(self) -> None:
        """Reject an operation kind outside the closed set."""
        with pytest.raises(InvalidOperation) as exc_info:
            parse_operation({"type": "merge_sections", "target_id": "s1"})

        assert exc_info.value.code == ErrorCode.INVALID_OPERATION
        assert "merge_sections" in exc_info.value.message

    def test_missing_type_is_reported(self) -> None:
        """Report a payload without a kind as a validation failure."""
        with pytest.raises(ValidationFailed) as exc_info:
            parse_operation({"target_id": "s1"})

        assert exc_info.value.result.codes() == ["MISSING_OPERATION_TYPE"]

    def test_missing_fields_are_reported_per_location(self) -> None:
        """Report each missing field with its path."""
        with pytest.raises(ValidationFailed) as exc_info:
            parse_operation({"type": "add_section", "section": {"type": "text"}})

        result = exc_info.value.result
        assert result.valid is False
        fields = {issue.field for issue in result.errors}
        assert fields == {"section.content", "position"}
        assert set(result.codes()) == {"MISSING_REQUIRED_FIELD"}

    def test_invalid_field_value_is_reported(self) -> None:
        """Report a malformed value as INVALID_FIELD."""
        with pytest.raises(ValidationFailed) as exc_info:
            parse_operation(
                {
                    "type": "add_section",
                    "section": {"type": "paragraph", "content": "x"},
                    "position": 0,
                }
            )

        issue = exc_info.value.result.errors[0]
        assert issue.code == "INVALID_FIELD"
        assert issue.field == "section.type"


class TestOperationValues:
    """Test helpers on individual operation kinds."""

    def test_operations_are_immutable(self) -> None:
        """Reject attribute assignment on an operation."""
        op = RemoveSection(target_id="s1")
        with pytest.raises(PydanticValidationError):
            op.target_id = "s2"

    def test_edit_changes_only_include_provided_fields(self) -> None:
        """Leave unspecified fields out of the change set."""
        op = EditSection(target_id="s1", content="New", section_type=SectionType.EQUATION)

        assert op.changes() == {"content": "New", "type": SectionType.EQUATION}

    def test_edit_changes_keep_false_and_empty_values(self) -> None:
        """Treat False and an empty list as real changes."""
        op = EditSection(target_id="s1", editable=False, dependencies=[])

        assert op.changes() == {"editable": False, "dependencies": []}

    def test_regenerate_params_exclude_routing_fields(self) -> None:
        """Dump only the generation inputs."""
        op = RegenerateImage(
            target_id="img-1",
            style=FlatLineStyle(line_weight=LineWeight.THICK),
            prompt="a right triangle",
        )

        params = op.generation_params()

        assert "target_id" not in params
        assert "type" not in params
        assert "context" not in params
        assert params["prompt"] == "a right triangle"
        assert params["style"]["line_weight"] == "thick"

    def test_request_round_trips_through_json(self) -> None:
        """Restore the operation variant from its tag."""
        request = ModificationRequest(
            material_id="mat-1",
            operation=AddSection(
                section=SectionDraft(type=SectionType.TEXT, content="Body"), position=3
            ),
            actor_id="user-1",
        )

        restored = ModificationRequest.model_validate_json(request.model_dump_json())

        assert restored.operation == request.operation
        assert restored.operation.type == OperationType.ADD_SECTION
