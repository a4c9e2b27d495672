"""Validation result value objects produced by the validator."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, computed_field


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    code: str
    message: str
    severity: Severity = Severity.ERROR
    field: str | None = None
    suggestion: str | None = None


class ValidationResult(BaseModel):
    """Errors and warnings for one proposed operation.

    Only error-severity entries in ``errors`` block the operation.
    """

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def valid(self) -> bool:
        return not self.blocking_errors

    @property
    def blocking_errors(self) -> list[ValidationIssue]:
        return [e for e in self.errors if e.severity == Severity.ERROR]

    def codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def extend(self, other: ValidationResult) -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def error(
        self,
        code: str,
        message: str,
        *,
        field: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.errors.append(
            ValidationIssue(code=code, message=message, field=field, suggestion=suggestion)
        )

    def warn(
        self,
        code: str,
        message: str,
        *,
        field: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.warnings.append(
            ValidationIssue(
                code=code,
                message=message,
                severity=Severity.WARNING,
                field=field,
                suggestion=suggestion,
            )
        )
