"""Image models — generated or original visuals attached to a material."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from study_editor.models.base import new_id, utcnow


class ImageType(StrEnum):
    GENERATED = "generated"
    ORIGINAL = "original"
    RECREATED = "recreated"


class ImageFormat(StrEnum):
    SVG = "svg"
    PNG = "png"
    JPG = "jpg"


class GeneratorKind(StrEnum):
    SIMPLE_GENERATOR = "simple-generator"
    DALLE = "dalle"
    UPLOAD = "upload"


class LineWeight(StrEnum):
    THIN = "thin"
    MEDIUM = "medium"
    THICK = "thick"


class ColorScheme(StrEnum):
    MONOCHROME = "monochrome"
    MINIMAL_COLOR = "minimal-color"


class ImageLayout(StrEnum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    GRID = "grid"


class FlatLineStyle(BaseModel):
    line_weight: LineWeight = LineWeight.MEDIUM
    color_scheme: ColorScheme = ColorScheme.MONOCHROME
    layout: ImageLayout = ImageLayout.HORIZONTAL
    annotations: bool = True


class ImageSource(BaseModel):
    type: GeneratorKind = GeneratorKind.SIMPLE_GENERATOR
    original_prompt: str | None = None
    generation_params: dict[str, Any] = Field(default_factory=dict)


class ImageMetadata(BaseModel):
    width: int
    height: int
    format: ImageFormat
    generated_at: datetime = Field(default_factory=utcnow)
    context: str = ""


class RegenerationOptions(BaseModel):
    available_styles: list[FlatLineStyle] = Field(default_factory=list)
    content_hints: list[str] = Field(default_factory=list)
    context_options: list[str] = Field(default_factory=list)


class ImageDraft(BaseModel):
    """An image as supplied by a caller, before an identifier is assigned."""

    type: ImageType = ImageType.GENERATED
    source: ImageSource = Field(default_factory=ImageSource)
    base64_data: str
    metadata: ImageMetadata
    editable: bool = True
    regeneration_options: RegenerationOptions | None = None


class GeneratedImage(ImageDraft):
    id: str = Field(default_factory=new_id)
