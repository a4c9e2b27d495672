"""Data models for study materials, operations and history."""

from study_editor.models.base import DocumentBase
from study_editor.models.export import ExportFormat, ExportOptions, ExportResult
from study_editor.models.history import HistoryKind, ModificationHistory
from study_editor.models.image import (
    GeneratedImage,
    ImageDraft,
    ImageFormat,
    ImageMetadata,
    ImageSource,
    ImageType,
)
from study_editor.models.material import MaterialMetadata, StudyMaterial
from study_editor.models.operations import (
    AddImage,
    AddSection,
    EditSection,
    ModificationRequest,
    Operation,
    OperationType,
    RegenerateImage,
    RemoveImage,
    RemoveSection,
    ReorderSections,
    parse_operation,
)
from study_editor.models.section import ContentSection, SectionDraft, SectionType
from study_editor.models.validation import Severity, ValidationIssue, ValidationResult

__all__ = [
    "AddImage",
    "AddSection",
    "ContentSection",
    "DocumentBase",
    "EditSection",
    "ExportFormat",
    "ExportOptions",
    "ExportResult",
    "GeneratedImage",
    "HistoryKind",
    "ImageDraft",
    "ImageFormat",
    "ImageMetadata",
    "ImageSource",
    "ImageType",
    "MaterialMetadata",
    "ModificationHistory",
    "ModificationRequest",
    "Operation",
    "OperationType",
    "RegenerateImage",
    "RemoveImage",
    "RemoveSection",
    "ReorderSections",
    "SectionDraft",
    "SectionType",
    "Severity",
    "StudyMaterial",
    "ValidationIssue",
    "ValidationResult",
    "parse_operation",
]
