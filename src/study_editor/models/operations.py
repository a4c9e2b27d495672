"""Typed operation contracts — one payload shape per edit kind."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from study_editor.errors import InvalidOperation, ValidationFailed
from study_editor.models.base import utcnow
from study_editor.models.image import FlatLineStyle, ImageDraft
from study_editor.models.section import SectionDraft, SectionType
from study_editor.models.validation import ValidationResult


class OperationType(StrEnum):
    ADD_SECTION = "add_section"
    REMOVE_SECTION = "remove_section"
    EDIT_SECTION = "edit_section"
    REORDER_SECTIONS = "reorder_sections"
    ADD_IMAGE = "add_image"
    REMOVE_IMAGE = "remove_image"
    REGENERATE_IMAGE = "regenerate_image"


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True)


class AddSection(_Operation):
    type: Literal[OperationType.ADD_SECTION] = OperationType.ADD_SECTION
    section: SectionDraft
    position: int


class RemoveSection(_Operation):
    type: Literal[OperationType.REMOVE_SECTION] = OperationType.REMOVE_SECTION
    target_id: str


class EditSection(_Operation):
    """Shallow field changes for one section; ``None`` leaves a field untouched."""

    type: Literal[OperationType.EDIT_SECTION] = OperationType.EDIT_SECTION
    target_id: str
    content: str | None = None
    section_type: SectionType | None = None
    editable: bool | None = None
    dependencies: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        fields = {
            "content": self.content,
            "type": self.section_type,
            "editable": self.editable,
            "dependencies": self.dependencies,
        }
        return {name: value for name, value in fields.items() if value is not None}


class ReorderSections(_Operation):
    type: Literal[OperationType.REORDER_SECTIONS] = OperationType.REORDER_SECTIONS
    section_ids: list[str]


class AddImage(_Operation):
    type: Literal[OperationType.ADD_IMAGE] = OperationType.ADD_IMAGE
    image: ImageDraft
    position: int
    section_id: str | None = None


class RemoveImage(_Operation):
    type: Literal[OperationType.REMOVE_IMAGE] = OperationType.REMOVE_IMAGE
    target_id: str


class RegenerateImage(_Operation):
    type: Literal[OperationType.REGENERATE_IMAGE] = OperationType.REGENERATE_IMAGE
    target_id: str
    style: FlatLineStyle | None = None
    prompt: str | None = None
    context: str | None = None

    def generation_params(self) -> dict[str, Any]:
        return self.model_dump(
            mode="json", exclude={"type", "target_id"}, exclude_none=True
        )


Operation = Annotated[
    AddSection
    | RemoveSection
    | EditSection
    | ReorderSections
    | AddImage
    | RemoveImage
    | RegenerateImage,
    Field(discriminator="type"),
]

TARGETED_OPERATIONS = (RemoveSection, EditSection, RemoveImage, RegenerateImage)

_operation_adapter: TypeAdapter[Operation] = TypeAdapter(Operation)


class ModificationRequest(BaseModel):
    """A caller's request to apply one operation to one material."""

    material_id: str
    operation: Operation
    actor_id: str | None = None
    session_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


def parse_operation(raw: Mapping[str, Any]) -> Operation:
    """Build a typed operation from an untyped payload.

    Raises ``InvalidOperation`` for an unknown kind and ``ValidationFailed``
    with one issue per missing or malformed field.
    """
    try:
        return _operation_adapter.validate_python(dict(raw))
    except PydanticValidationError as exc:
        result = ValidationResult()
        kind = raw.get("type")
        for error in exc.errors():
            if error["type"] == "union_tag_invalid":
                msg = f"Unknown operation type: {kind}"
                raise InvalidOperation(msg) from exc
            if error["type"] == "union_tag_not_found":
                result.error(
                    "MISSING_OPERATION_TYPE", "Operation type is required", field="type"
                )
                continue
            loc = list(error["loc"])
            if loc and loc[0] == kind:
                loc = loc[1:]
            field = ".".join(str(part) for part in loc) or None
            if error["type"] == "missing":
                result.error(
                    "MISSING_REQUIRED_FIELD",
                    f"Field {field} is required for {kind}",
                    field=field,
                )
            else:
                result.error("INVALID_FIELD", error["msg"], field=field)
        raise ValidationFailed(result) from exc
