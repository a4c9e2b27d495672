"""Operation validation — checks a proposed operation against a material.

Validation never mutates the material and never performs I/O. It runs four
passes in order (structural, state, dependency, business rules) followed by
content checks for equation sections, and concatenates their findings into one
``ValidationResult``.
"""

from __future__ import annotations

import logging
import re
from collections import Counter

from study_editor.config import EngineConfig
from study_editor.engine.dependencies import DependencyGraph
from study_editor.models.material import StudyMaterial
from study_editor.models.operations import (
    TARGETED_OPERATIONS,
    AddImage,
    AddSection,
    EditSection,
    Operation,
    RegenerateImage,
    RemoveImage,
    RemoveSection,
    ReorderSections,
)
from study_editor.models.section import SectionType
from study_editor.models.validation import ValidationResult

logger = logging.getLogger(__name__)

_LATEX_COMMAND = re.compile(r"\\[a-zA-Z]+")
_KNOWN_OPERATIONS = (
    AddSection,
    RemoveSection,
    EditSection,
    ReorderSections,
    AddImage,
    RemoveImage,
    RegenerateImage,
)


def _clamped(position: int, length: int) -> int:
    return max(0, min(position, length))


class OperationValidator:
    """Validate operations against the current state of a material."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()

    def validate(self, material: StudyMaterial, operation: Operation) -> ValidationResult:
        """Return every error and warning for applying ``operation`` to ``material``.

        Later passes assume a well-formed operation, so they are skipped when
        the structural pass reports a blocking error.
        """
        result = self._validate_structure(operation)
        if not result.valid:
            return result
        result.extend(self._validate_state(material, operation))
        result.extend(self._validate_dependencies(material, operation))
        result.extend(self._validate_business_rules(material, operation))
        result.extend(self._validate_content(material, operation))
        if not result.valid:
            logger.debug(
                "Operation rejected — material=%s op=%s codes=%s",
                material.id,
                operation.type,
                ",".join(result.codes()),
            )
        return result

    def audit(self, material: StudyMaterial) -> ValidationResult:
        """Check the structural integrity of a whole material.

        Reports duplicate identifiers, dangling dependency references,
        dependency cycles and gaps in the section order.
        """
        result = ValidationResult()
        section_ids = Counter(s.id for s in material.sections)
        for section_id, count in section_ids.items():
            if count > 1:
                result.error(
                    "DUPLICATE_SECTION_ID",
                    f"Duplicate section ID found: {section_id}",
                    field="sections",
                )
        image_ids = Counter(i.id for i in material.images)
        for image_id, count in image_ids.items():
            if count > 1:
                result.error(
                    "DUPLICATE_IMAGE_ID",
                    f"Duplicate image ID found: {image_id}",
                    field="images",
                )

        graph = DependencyGraph(material.sections)
        for section_id, dep_id in graph.missing_references():
            result.error(
                "BROKEN_DEPENDENCY",
                f"Section {section_id} depends on non-existent section {dep_id}",
                field="dependencies",
            )
        if self._config.detect_cycles:
            cycle = graph.find_cycle()
            if cycle:
                result.error(
                    "DEPENDENCY_CYCLE",
                    f"Sections form a dependency cycle: {' -> '.join(cycle)}",
                    field="dependencies",
                )

        orders = sorted(s.order for s in material.sections)
        if orders != list(range(len(orders))):
            result.warn(
                "INCONSISTENT_ORDER",
                "Section order values are not sequential",
                field="sections",
                suggestion="Reorder sections to fix ordering",
            )
        return result

    # -- pass (a) --

    def _validate_structure(self, operation: Operation | None) -> ValidationResult:
        result = ValidationResult()
        if operation is None:
            result.error("MISSING_OPERATION_TYPE", "Operation type is required", field="type")
            return result
        if not isinstance(operation, _KNOWN_OPERATIONS):
            result.error(
                "UNKNOWN_OPERATION",
                f"Unknown operation type: {type(operation).__name__}",
                field="type",
            )
            return result

        if isinstance(operation, TARGETED_OPERATIONS) and not operation.target_id.strip():
            result.error(
                "MISSING_TARGET_ID",
                f"Target ID is required for {operation.type} operation",
                field="target_id",
            )

        match operation:
            case ReorderSections(section_ids=section_ids):
                if any(not section_id.strip() for section_id in section_ids):
                    result.error(
                        "INVALID_SECTION_ORDER",
                        "Section order must contain only non-empty section IDs",
                        field="section_ids",
                    )
            case AddImage(image=image):
                if not image.base64_data.strip():
                    result.error(
                        "MISSING_IMAGE_DATA",
                        "Image data is required",
                        field="image.base64_data",
                    )
                if image.metadata.width <= 0 or image.metadata.height <= 0:
                    result.error(
                        "INVALID_IMAGE_DIMENSIONS",
                        "Image dimensions must be positive numbers",
                        field="image.metadata",
                    )
            case EditSection() if not operation.changes():
                result.warn(
                    "NO_CHANGES",
                    "Edit does not change any section field",
                    field="target_id",
                )
            case _:
                pass
        return result

    # -- pass (b) --

    def _validate_state(
        self, material: StudyMaterial, operation: Operation
    ) -> ValidationResult:
        result = ValidationResult()
        match operation:
            case AddSection(section=draft, position=position):
                self._check_position(result, position, len(material.sections))
                if not draft.content.strip():
                    result.error(
                        "EMPTY_SECTION_CONTENT",
                        "Section content cannot be empty",
                        field="section.content",
                    )
                if draft.parent_id is not None and not material.find_section(draft.parent_id):
                    result.error(
                        "SECTION_NOT_FOUND",
                        f"Parent section with ID {draft.parent_id} not found",
                        field="section.parent_id",
                    )

            case RemoveSection(target_id=target_id):
                section = material.find_section(target_id)
                if section is None:
                    result.error(
                        "SECTION_NOT_FOUND",
                        f"Section with ID {target_id} not found",
                        field="target_id",
                    )
                elif not section.editable:
                    result.error(
                        "SECTION_NOT_EDITABLE",
                        "Section is not editable",
                        field="target_id",
                    )

            case EditSection(target_id=target_id):
                section = material.find_section(target_id)
                if section is None:
                    result.error(
                        "SECTION_NOT_FOUND",
                        f"Section with ID {target_id} not found",
                        field="target_id",
                    )
                    return result
                if not section.editable:
                    result.error(
                        "SECTION_NOT_EDITABLE",
                        "Section is not editable",
                        field="target_id",
                    )
                if operation.content is not None and not operation.content.strip():
                    result.error(
                        "EMPTY_SECTION_CONTENT",
                        "Section content cannot be empty",
                        field="content",
                    )
                if operation.section_type is not None and operation.section_type != section.type:
                    result.warn(
                        "TYPE_CHANGE_WARNING",
                        f"Changing section type from {section.type} to {operation.section_type}",
                        field="section_type",
                        suggestion="Verify content is appropriate for the new section type",
                    )

            case ReorderSections(section_ids=section_ids):
                current = {s.id for s in material.sections}
                if len(section_ids) != len(current):
                    result.error(
                        "SECTION_COUNT_MISMATCH",
                        f"Section order must include all {len(current)} sections",
                        field="section_ids",
                    )
                duplicates = sorted(i for i, n in Counter(section_ids).items() if n > 1)
                if duplicates:
                    result.error(
                        "DUPLICATE_SECTION_IDS",
                        f"Duplicate section IDs in order: {', '.join(duplicates)}",
                        field="section_ids",
                    )
                for section_id in dict.fromkeys(section_ids):
                    if section_id not in current:
                        result.error(
                            "INVALID_SECTION_ID",
                            f"Section ID {section_id} not found",
                            field="section_ids",
                        )

            case AddImage(position=position, section_id=section_id):
                self._check_position(result, position, len(material.images))
                if section_id is not None and not material.find_section(section_id):
                    result.error(
                        "SECTION_NOT_FOUND",
                        f"Section with ID {section_id} not found",
                        field="section_id",
                    )

            case RemoveImage(target_id=target_id) | RegenerateImage(target_id=target_id):
                image = material.find_image(target_id)
                if image is None:
                    result.error(
                        "IMAGE_NOT_FOUND",
                        f"Image with ID {target_id} not found",
                        field="target_id",
                    )
                    return result
                if not image.editable:
                    result.error(
                        "IMAGE_NOT_EDITABLE",
                        "Image is not editable",
                        field="target_id",
                    )
                if isinstance(operation, RegenerateImage) and image.regeneration_options is None:
                    result.warn(
                        "NO_REGENERATION_OPTIONS",
                        "Image has no regeneration options",
                        field="target_id",
                        suggestion="Image may not regenerate as expected",
                    )
        return result

    @staticmethod
    def _check_position(result: ValidationResult, position: int, length: int) -> None:
        if not 0 <= position <= length:
            result.warn(
                "INVALID_POSITION",
                f"Position {position} is out of range (0-{length})",
                field="position",
                suggestion=f"Position will be clamped to {_clamped(position, length)}",
            )

    # -- pass (c) --

    def _validate_dependencies(
        self, material: StudyMaterial, operation: Operation
    ) -> ValidationResult:
        result = ValidationResult()
        match operation:
            case RemoveSection(target_id=target_id):
                dependents = DependencyGraph(material.sections).dependents(target_id)
                if dependents:
                    result.error(
                        "DEPENDENCY_CONFLICT",
                        f"Cannot remove section: {len(dependents)} other sections depend on it",
                        field="target_id",
                        suggestion="Remove dependent sections first or update their dependencies",
                    )
                    result.warn(
                        "DEPENDENT_SECTIONS",
                        f"Dependent sections: {', '.join(dependents)}",
                        field="target_id",
                    )

            case AddSection(section=draft, position=position) if draft.dependencies:
                pending_id = "__pending__"
                ordered = [s.id for s in material.ordered_sections()]
                insert_at = _clamped(position, len(ordered))
                ordered.insert(insert_at, pending_id)
                self._check_declared_dependencies(
                    result, material, pending_id, draft.dependencies, ordered, "section.dependencies"
                )

            case EditSection(target_id=target_id, dependencies=dependencies) if (
                dependencies is not None and material.find_section(target_id)
            ):
                ordered = [s.id for s in material.ordered_sections()]
                self._check_declared_dependencies(
                    result, material, target_id, dependencies, ordered, "dependencies"
                )

            case ReorderSections(section_ids=section_ids):
                position = {section_id: index for index, section_id in enumerate(section_ids)}
                for section_id in section_ids:
                    section = material.find_section(section_id)
                    if section is None:
                        continue
                    for dep_id in section.dependencies:
                        if dep_id in position and position[dep_id] > position[section_id]:
                            result.error(
                                "DEPENDENCY_ORDER_VIOLATION",
                                f"Section {section_id} depends on {dep_id} "
                                "but would come before it",
                                field="section_ids",
                            )
            case _:
                pass
        return result

    def _check_declared_dependencies(
        self,
        result: ValidationResult,
        material: StudyMaterial,
        section_id: str,
        dependencies: list[str],
        ordered: list[str],
        field: str,
    ) -> None:
        missing = [d for d in dependencies if not material.find_section(d)]
        if missing:
            result.error(
                "INVALID_DEPENDENCIES",
                f"Dependencies not found: {', '.join(missing)}",
                field=field,
            )
        if section_id in dependencies:
            result.error(
                "SELF_DEPENDENCY",
                f"Section {section_id} cannot depend on itself",
                field=field,
            )

        own_position = ordered.index(section_id)
        for dep_id in dependencies:
            if dep_id == section_id or dep_id not in ordered:
                continue
            if ordered.index(dep_id) > own_position:
                result.error(
                    "DEPENDENCY_ORDER_VIOLATION",
                    f"Section {section_id} depends on {dep_id} but comes before it",
                    field=field,
                )

        if self._config.detect_cycles:
            valid_deps = [d for d in dependencies if d != section_id]
            graph = DependencyGraph(material.sections).with_dependencies(section_id, valid_deps)
            cycle = graph.find_cycle()
            if cycle:
                result.error(
                    "DEPENDENCY_CYCLE",
                    f"Dependencies would form a cycle: {' -> '.join(cycle)}",
                    field=field,
                )

    # -- pass (d) --

    def _validate_business_rules(
        self, material: StudyMaterial, operation: Operation
    ) -> ValidationResult:
        result = ValidationResult()
        content: str | None = None
        match operation:
            case AddSection(section=draft):
                if len(material.sections) >= self._config.max_sections:
                    result.error(
                        "MAX_SECTIONS_EXCEEDED",
                        f"Maximum of {self._config.max_sections} sections allowed",
                        field="section",
                    )
                content = draft.content
            case EditSection(content=new_content):
                content = new_content
            case _:
                pass

        if content is not None and len(content) > self._config.large_content_chars:
            result.warn(
                "LARGE_CONTENT",
                "Section content is very large",
                field="content",
                suggestion="Consider breaking into smaller sections",
            )
        return result

    # -- equation content --

    def _validate_content(
        self, material: StudyMaterial, operation: Operation
    ) -> ValidationResult:
        result = ValidationResult()
        match operation:
            case AddSection(section=draft) if draft.type == SectionType.EQUATION:
                self._check_equation(result, draft.content, "section.content")
            case EditSection(target_id=target_id, content=content, section_type=section_type):
                section = material.find_section(target_id)
                if section is None:
                    return result
                resulting_type = section_type or section.type
                if resulting_type == SectionType.EQUATION and (
                    content is not None or section_type is not None
                ):
                    self._check_equation(
                        result, content if content is not None else section.content, "content"
                    )
            case _:
                pass
        return result

    @staticmethod
    def _check_equation(result: ValidationResult, content: str, field: str) -> None:
        depth = 0
        for char in content:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth < 0:
                    break
        if depth != 0:
            result.error(
                "UNMATCHED_BRACES",
                "Unmatched braces in equation",
                field=field,
                suggestion="Check that all opening braces have matching closing braces",
            )
        if "$" in content and not _LATEX_COMMAND.search(content):
            result.warn(
                "POSSIBLE_LATEX_ISSUE",
                "Equation contains $ but no LaTeX commands",
                field=field,
                suggestion="Verify LaTeX syntax is correct",
            )
