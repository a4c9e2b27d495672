"""Export of study materials to downloadable formats."""

from study_editor.export.renderer import EXPORT_TEMPLATES, MaterialExporter, export_filename

__all__ = ["EXPORT_TEMPLATES", "MaterialExporter", "export_filename"]
