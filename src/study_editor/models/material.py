"""Study material document model — the versioned aggregate edited by operations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from study_editor.models.base import DocumentBase
from study_editor.models.image import GeneratedImage
from study_editor.models.section import ContentSection, SectionType


class MaterialMetadata(BaseModel):
    """Free-form statistics about a material, kept current by the mutator."""

    owner_id: str | None = None
    original_files: list[str] = Field(default_factory=list)
    generation_config: dict[str, Any] = Field(default_factory=dict)
    preservation_score: float = 1.0
    total_sections: int = 0
    total_formulas: int = 0
    total_examples: int = 0
    estimated_print_pages: int = 1


class StudyMaterial(DocumentBase):
    """A study material assembled from sections and images.

    ``version`` starts at 1 and grows by exactly one per successful mutation.
    """

    title: str
    sections: list[ContentSection] = Field(default_factory=list)
    images: list[GeneratedImage] = Field(default_factory=list)
    metadata: MaterialMetadata = Field(default_factory=MaterialMetadata)
    version: int = 1

    def find_section(self, section_id: str) -> ContentSection | None:
        return next((s for s in self.sections if s.id == section_id), None)

    def find_image(self, image_id: str) -> GeneratedImage | None:
        return next((i for i in self.images if i.id == image_id), None)

    def ordered_sections(self) -> list[ContentSection]:
        return sorted(self.sections, key=lambda s: s.order)

    def snapshot(self) -> StudyMaterial:
        """Return a deep copy that later mutations cannot reach."""
        return self.model_copy(deep=True)


def count_statistics(sections: list[ContentSection]) -> dict[str, int]:
    """Compute the section, formula and example totals for a section list."""
    return {
        "total_sections": len(sections),
        "total_formulas": sum(1 for s in sections if s.type == SectionType.EQUATION),
        "total_examples": sum(1 for s in sections if s.type == SectionType.EXAMPLE),
    }
