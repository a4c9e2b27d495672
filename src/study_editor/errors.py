"""Error taxonomy for material modification.

Every failure the engine reports to a caller is a ``ContentModificationError``
carrying a machine-readable ``code``. ``MutationPreconditionError`` sits outside
the taxonomy: it marks a programmer error in the mutator and is never retried.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from study_editor.engine.recovery import RecoveryResult
    from study_editor.models.validation import ValidationResult


class ErrorCode(StrEnum):
    MATERIAL_NOT_FOUND = "MATERIAL_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_OPERATION = "INVALID_OPERATION"
    DEPENDENCY_CONFLICT = "DEPENDENCY_CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CONTENT_CORRUPTION = "CONTENT_CORRUPTION"
    EXPORT_ERROR = "EXPORT_ERROR"


class ContentModificationError(Exception):
    """Base class for failures surfaced by the modification engine."""

    code: ErrorCode = ErrorCode.INVALID_OPERATION

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details
        self.recovery: RecoveryResult | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for transport layers."""
        payload: dict[str, Any] = {"code": str(self.code), "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.recovery is not None:
            payload["recovery"] = self.recovery.model_dump(
                mode="json", exclude={"recovered_document"}
            )
        return payload


class MaterialNotFound(ContentModificationError):
    code = ErrorCode.MATERIAL_NOT_FOUND

    def __init__(self, material_id: str) -> None:
        super().__init__(f"Study material with ID {material_id} not found")
        self.material_id = material_id


class ValidationFailed(ContentModificationError):
    """Raised when the validator rejects an operation; carries the full result."""

    code = ErrorCode.VALIDATION_FAILED

    def __init__(self, result: ValidationResult) -> None:
        messages = ", ".join(issue.message for issue in result.blocking_errors)
        super().__init__(
            f"Validation failed: {messages}",
            details=result.model_dump(mode="json"),
        )
        self.result = result


class InvalidOperation(ContentModificationError):
    code = ErrorCode.INVALID_OPERATION


class DependencyConflict(ContentModificationError):
    code = ErrorCode.DEPENDENCY_CONFLICT


class StorageError(ContentModificationError):
    code = ErrorCode.STORAGE_ERROR


class PermissionDenied(ContentModificationError):
    code = ErrorCode.PERMISSION_DENIED


class ConcurrentModification(ContentModificationError):
    code = ErrorCode.CONCURRENT_MODIFICATION

    def __init__(
        self,
        material_id: str,
        expected_version: int,
        actual_version: int | None,
    ) -> None:
        super().__init__(
            f"Material {material_id} was modified concurrently: "
            f"expected version {expected_version}, found {actual_version}",
            details={
                "material_id": material_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.material_id = material_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class QuotaExceeded(ContentModificationError):
    code = ErrorCode.QUOTA_EXCEEDED


class ContentCorruption(ContentModificationError):
    code = ErrorCode.CONTENT_CORRUPTION


class ExportError(ContentModificationError):
    code = ErrorCode.EXPORT_ERROR


class MutationPreconditionError(RuntimeError):
    """The mutator was handed an operation whose target does not exist."""
