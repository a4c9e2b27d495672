"""Pure operation application — one function per operation kind.

Every function returns a new material and leaves its input untouched. The
version and timestamps are owned by the orchestrator, not by these functions.
"""

from __future__ import annotations

from datetime import datetime

from study_editor.errors import InvalidOperation, MutationPreconditionError
from study_editor.models.base import new_id, utcnow
from study_editor.models.image import GeneratedImage
from study_editor.models.material import StudyMaterial
from study_editor.models.operations import (
    AddImage,
    AddSection,
    EditSection,
    Operation,
    RegenerateImage,
    RemoveImage,
    RemoveSection,
    ReorderSections,
)
from study_editor.models.section import ContentSection, SectionType


def apply_operation(
    material: StudyMaterial, operation: Operation, *, now: datetime | None = None
) -> StudyMaterial:
    """Dispatch ``operation`` to the function for its kind.

    ``now`` stamps fields that record when an operation ran; it defaults to
    the current UTC time.
    """
    match operation:
        case AddSection():
            return add_section(material, operation)
        case RemoveSection():
            return remove_section(material, operation)
        case EditSection():
            return edit_section(material, operation)
        case ReorderSections():
            return reorder_sections(material, operation)
        case AddImage():
            return add_image(material, operation)
        case RemoveImage():
            return remove_image(material, operation)
        case RegenerateImage():
            return regenerate_image(material, operation, now=now)
        case _:
            msg = f"Unknown operation type: {type(operation).__name__}"
            raise InvalidOperation(msg)


def _renumber(sections: list[ContentSection]) -> list[ContentSection]:
    for index, section in enumerate(sections):
        section.order = index
    return sections


def _adjust_statistics(material: StudyMaterial, section_type: SectionType, delta: int) -> None:
    stats = material.metadata
    stats.total_sections = max(0, stats.total_sections + delta)
    if section_type == SectionType.EQUATION:
        stats.total_formulas = max(0, stats.total_formulas + delta)
    elif section_type == SectionType.EXAMPLE:
        stats.total_examples = max(0, stats.total_examples + delta)


def _require_section(material: StudyMaterial, section_id: str) -> ContentSection:
    section = material.find_section(section_id)
    if section is None:
        msg = f"Section {section_id} does not exist in material {material.id}"
        raise MutationPreconditionError(msg)
    return section


def _require_image(material: StudyMaterial, image_id: str) -> GeneratedImage:
    image = material.find_image(image_id)
    if image is None:
        msg = f"Image {image_id} does not exist in material {material.id}"
        raise MutationPreconditionError(msg)
    return image


def add_section(material: StudyMaterial, operation: AddSection) -> StudyMaterial:
    """Insert a new section at the clamped position and renumber all sections."""
    updated = material.snapshot()
    sections = updated.ordered_sections()
    position = max(0, min(operation.position, len(sections)))
    section = ContentSection.model_validate(
        {**operation.section.model_dump(), "id": new_id(), "order": position}
    )
    sections.insert(position, section)
    updated.sections = _renumber(sections)
    _adjust_statistics(updated, section.type, 1)
    return updated


def remove_section(material: StudyMaterial, operation: RemoveSection) -> StudyMaterial:
    """Drop a section, renumber the rest and strip references to it."""
    updated = material.snapshot()
    target = _require_section(updated, operation.target_id)
    remaining = [s for s in updated.ordered_sections() if s.id != target.id]
    for section in remaining:
        if target.id in section.dependencies:
            section.dependencies = [d for d in section.dependencies if d != target.id]
    updated.sections = _renumber(remaining)
    _adjust_statistics(updated, target.type, -1)
    return updated


def edit_section(material: StudyMaterial, operation: EditSection) -> StudyMaterial:
    """Merge the provided field changes into one section."""
    updated = material.snapshot()
    target = _require_section(updated, operation.target_id)
    changes = operation.changes()
    if "type" in changes and changes["type"] != target.type:
        _adjust_statistics(updated, target.type, -1)
        _adjust_statistics(updated, changes["type"], 1)
    for name, value in changes.items():
        setattr(target, name, list(value) if isinstance(value, list) else value)
    return updated


def reorder_sections(material: StudyMaterial, operation: ReorderSections) -> StudyMaterial:
    """Assign each section the order of its position in ``section_ids``."""
    updated = material.snapshot()
    by_id = {s.id: s for s in updated.sections}
    if set(operation.section_ids) != set(by_id) or len(operation.section_ids) != len(by_id):
        msg = f"Reorder of material {material.id} does not name every section exactly once"
        raise MutationPreconditionError(msg)
    updated.sections = _renumber([by_id[section_id] for section_id in operation.section_ids])
    return updated


def add_image(material: StudyMaterial, operation: AddImage) -> StudyMaterial:
    updated = material.snapshot()
    position = max(0, min(operation.position, len(updated.images)))
    image = GeneratedImage.model_validate({**operation.image.model_dump(), "id": new_id()})
    updated.images.insert(position, image)
    return updated


def remove_image(material: StudyMaterial, operation: RemoveImage) -> StudyMaterial:
    updated = material.snapshot()
    target = _require_image(updated, operation.target_id)
    updated.images = [i for i in updated.images if i.id != target.id]
    return updated


def regenerate_image(
    material: StudyMaterial, operation: RegenerateImage, *, now: datetime | None = None
) -> StudyMaterial:
    """Record new generation parameters; pixel data is left for the image generator."""
    updated = material.snapshot()
    target = _require_image(updated, operation.target_id)
    target.metadata.generated_at = now or utcnow()
    target.source.generation_params = operation.generation_params()
    return updated
