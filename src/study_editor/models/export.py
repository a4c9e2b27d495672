"""Export boundary contracts consumed by renderers."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from study_editor.models.base import utcnow


class ExportFormat(StrEnum):
    HTML = "html"
    MARKDOWN = "markdown"
    PDF = "pdf"


class ExportOptions(BaseModel):
    format: ExportFormat
    include_images: bool = True
    include_metadata: bool = False


class ExportMetadata(BaseModel):
    exported_at: datetime = Field(default_factory=utcnow)
    section_count: int
    image_count: int
    byte_size: int


class ExportResult(BaseModel):
    content: str | bytes
    filename: str
    format: ExportFormat
    metadata: ExportMetadata
