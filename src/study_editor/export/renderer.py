"""Render study materials to HTML and Markdown with Jinja2 templates."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateError

from study_editor.errors import ExportError
from study_editor.models.base import utcnow
from study_editor.models.export import ExportFormat, ExportMetadata, ExportOptions, ExportResult
from study_editor.models.image import ImageFormat
from study_editor.models.material import StudyMaterial

logger = logging.getLogger(__name__)

EXPORT_TEMPLATES = Path(__file__).parent / "templates"

_TEMPLATES = {
    ExportFormat.HTML: ("material.html", "html"),
    ExportFormat.MARKDOWN: ("material.md", "md"),
}
_FILENAME_UNSAFE = re.compile(r"[^a-zA-Z0-9]")
_LIST_MARKER = re.compile(r"^[-*]\s*")
_IMAGE_MIME_TYPES = {
    ImageFormat.SVG: "image/svg+xml",
    ImageFormat.PNG: "image/png",
    ImageFormat.JPG: "image/jpeg",
}


def export_filename(title: str, extension: str) -> str:
    return f"{_FILENAME_UNSAFE.sub('_', title)}.{extension}"


def _anchor(text: str) -> str:
    return re.sub(r"-+", "-", re.sub(r"[^a-z0-9]", "-", text.lower())).strip("-")


def _list_items(content: str) -> list[str]:
    return [_LIST_MARKER.sub("", line) for line in content.splitlines() if line.strip()]

def _mime_type(image_format: ImageFormat) -> str:
    return _IMAGE_MIME_TYPES[image_format]



def _build_env(*, autoescape: bool) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(EXPORT_TEMPLATES)),
        autoescape=autoescape,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["anchor"] = _anchor
    env.filters["list_items"] = _list_items
    env.filters["mime_type"] = _mime_type
    return env


class MaterialExporter:
    """Turn a material into a downloadable document.

    PDF output needs a rendering backend this package does not ship, so it is
    rejected with ``ExportError``.
    """

    def __init__(self) -> None:
        self._envs = {
            ExportFormat.HTML: _build_env(autoescape=True),
            ExportFormat.MARKDOWN: _build_env(autoescape=False),
        }

    def export(self, material: StudyMaterial, options: ExportOptions) -> ExportResult:
        if options.format not in _TEMPLATES:
            msg = f"Export format {options.format} is not supported"
            raise ExportError(msg)
        template_name, extension = _TEMPLATES[options.format]

        sections = material.ordered_sections()
        images = material.images if options.include_images else []
        try:
            template = self._envs[options.format].get_template(template_name)
            content = template.render(
                material=material,
                sections=sections,
                headings=[s for s in sections if s.type == "heading"],
                images=images,
                include_metadata=options.include_metadata,
            )
        except TemplateError as exc:
            msg = f"Failed to render material {material.id} as {options.format}"
            raise ExportError(msg) from exc

        result = ExportResult(
            content=content,
            filename=export_filename(material.title, extension),
            format=options.format,
            metadata=ExportMetadata(
                exported_at=utcnow(),
                section_count=len(sections),
                image_count=len(images),
                byte_size=len(content.encode("utf-8")),
            ),
        )
        logger.info(
            "Material exported — material=%s format=%s bytes=%d",
            material.id,
            options.format,
            result.metadata.byte_size,
        )
        return result
