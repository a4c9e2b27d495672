"""Content section model — ordered, typed blocks of a study material."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from study_editor.models.base import new_id


class SectionType(StrEnum):
    TEXT = "text"
    EQUATION = "equation"
    EXAMPLE = "example"
    LIST = "list"
    HEADING = "heading"


class SectionDraft(BaseModel):
    """A section as supplied by a caller, before an identifier and order are assigned."""

    type: SectionType
    content: str
    editable: bool = True
    dependencies: list[str] = Field(default_factory=list)
    parent_id: str | None = None


class ContentSection(SectionDraft):
    """A section inside a material.

    ``dependencies`` lists sections that must exist and be ordered before
    this one.
    """

    id: str = Field(default_factory=new_id)
    order: int = 0
