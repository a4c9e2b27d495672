"""Failure classification and recovery for material modifications.

The handler maps a failure to an ``ErrorKind``, derives that kind's ranked
strategy menu, executes the automated strategies in descending priority and
reports the manual ones. The first automated strategy with priority of at
least ``SUCCESS_PRIORITY`` that completes is a successful recovery.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, Field

from study_editor.config import EngineConfig
from study_editor.engine.dependencies import DependencyGraph
from study_editor.errors import ContentModificationError, ErrorCode, ValidationFailed
from study_editor.models.base import new_id
from study_editor.models.material import StudyMaterial, count_statistics
from study_editor.models.operations import Operation
from study_editor.models.section import SectionType

logger = logging.getLogger(__name__)

SUCCESS_PRIORITY = 8
_MAX_RETRY_DELAY_SECONDS = 2.0
_JITTER_SCALE = 1000
_MISSING_CONTENT = "[Content missing]"


def _compute_retry_delay_seconds(attempt: int, base_delay: float) -> float:
    """Return bounded exponential backoff delay with jitter."""
    delay = base_delay * (2 ** min(attempt, 10))
    jitter_ratio = secrets.randbelow(_JITTER_SCALE) / _JITTER_SCALE
    return min(_MAX_RETRY_DELAY_SECONDS, delay + (delay * jitter_ratio))


class ErrorKind(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DEPENDENCY_CONFLICT = "DEPENDENCY_CONFLICT"
    CONTENT_CORRUPTION = "CONTENT_CORRUPTION"
    STORAGE_ERROR = "STORAGE_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    EXPORT_ERROR = "EXPORT_ERROR"
    INVALID_OPERATION = "INVALID_OPERATION"


class StrategyType(StrEnum):
    RETRY = "retry"
    ROLLBACK = "rollback"
    FIX_DEPENDENCIES = "fix-dependencies"
    VALIDATE_CONTENT = "validate-content"
    RELOAD_MATERIAL = "reload-material"
    CONTACT_SUPPORT = "contact-support"


ERROR_TITLES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION_ERROR: "Content Validation Failed",
    ErrorKind.DEPENDENCY_CONFLICT: "Dependency Conflict",
    ErrorKind.CONTENT_CORRUPTION: "Content Corruption Detected",
    ErrorKind.STORAGE_ERROR: "Storage Error",
    ErrorKind.CONCURRENT_MODIFICATION: "Concurrent Modification Conflict",
    ErrorKind.PERMISSION_DENIED: "Permission Denied",
    ErrorKind.QUOTA_EXCEEDED: "Storage Quota Exceeded",
    ErrorKind.EXPORT_ERROR: "Export Failed",
    ErrorKind.INVALID_OPERATION: "Invalid Operation",
}

ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION_ERROR: (
        "The content changes could not be validated. Please check the data and try again."
    ),
    ErrorKind.DEPENDENCY_CONFLICT: "This operation conflicts with existing content dependencies.",
    ErrorKind.CONTENT_CORRUPTION: "The content appears to be corrupted and needs to be repaired.",
    ErrorKind.STORAGE_ERROR: "Unable to save changes due to a storage issue.",
    ErrorKind.CONCURRENT_MODIFICATION: (
        "Another user has modified this content. Please refresh and try again."
    ),
    ErrorKind.PERMISSION_DENIED: "You do not have permission to perform this operation.",
    ErrorKind.QUOTA_EXCEEDED: (
        "Storage quota exceeded. Please remove some content or upgrade your plan."
    ),
    ErrorKind.EXPORT_ERROR: "Failed to export the content in the requested format.",
    ErrorKind.INVALID_OPERATION: "The requested operation is not valid for this content.",
}

STRATEGY_LABELS: dict[StrategyType, str] = {
    StrategyType.RETRY: "Retry",
    StrategyType.ROLLBACK: "Rollback Changes",
    StrategyType.FIX_DEPENDENCIES: "Fix Dependencies",
    StrategyType.VALIDATE_CONTENT: "Validate Content",
    StrategyType.RELOAD_MATERIAL: "Reload Material",
    StrategyType.CONTACT_SUPPORT: "Contact Support",
}

_CODE_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.MATERIAL_NOT_FOUND: ErrorKind.STORAGE_ERROR,
    ErrorCode.VALIDATION_FAILED: ErrorKind.VALIDATION_ERROR,
    ErrorCode.INVALID_OPERATION: ErrorKind.INVALID_OPERATION,
    ErrorCode.DEPENDENCY_CONFLICT: ErrorKind.DEPENDENCY_CONFLICT,
    ErrorCode.STORAGE_ERROR: ErrorKind.STORAGE_ERROR,
    ErrorCode.PERMISSION_DENIED: ErrorKind.PERMISSION_DENIED,
    ErrorCode.CONCURRENT_MODIFICATION: ErrorKind.CONCURRENT_MODIFICATION,
    ErrorCode.QUOTA_EXCEEDED: ErrorKind.QUOTA_EXCEEDED,
    ErrorCode.CONTENT_CORRUPTION: ErrorKind.CONTENT_CORRUPTION,
    ErrorCode.EXPORT_ERROR: ErrorKind.EXPORT_ERROR,
}

_KEYWORD_KINDS: tuple[tuple[tuple[str, ...], ErrorKind], ...] = (
    (("concurrent", "conflict"), ErrorKind.CONCURRENT_MODIFICATION),
    (("permission", "access"), ErrorKind.PERMISSION_DENIED),
    (("storage", "save"), ErrorKind.STORAGE_ERROR),
    (("dependency",), ErrorKind.DEPENDENCY_CONFLICT),
    (("quota", "limit"), ErrorKind.QUOTA_EXCEEDED),
    (("corrupt",), ErrorKind.CONTENT_CORRUPTION),
    (("export",), ErrorKind.EXPORT_ERROR),
)


def classify_error(error: BaseException) -> ErrorKind:
    """Map a failure to the error kind that selects its recovery menu."""
    if isinstance(error, ContentModificationError):
        return _CODE_KINDS.get(error.code, ErrorKind.INVALID_OPERATION)
    if isinstance(error, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(error, OSError):
        return ErrorKind.STORAGE_ERROR
    message = str(error).lower()
    for keywords, kind in _KEYWORD_KINDS:
        if any(keyword in message for keyword in keywords):
            return kind
    return ErrorKind.INVALID_OPERATION


@dataclass
class RecoveryContext:
    """What the handler knows about the failed modification.

    ``document_state`` is the material the failed step was working on and
    ``previous_state`` the last persisted version. ``persist`` writes a
    repaired material under the same version guard as the original write;
    ``reload`` reruns the whole modification against freshly loaded state.
    """

    material_id: str
    operation: Operation | None = None
    document_state: StudyMaterial | None = None
    previous_state: StudyMaterial | None = None
    actor_id: str | None = None
    session_id: str | None = None
    attempt_number: int = 1
    previous_errors: list[BaseException] = field(default_factory=list)
    persist: Callable[[StudyMaterial], Awaitable[None]] | None = None
    reload: Callable[[], Awaitable[StudyMaterial]] | None = None


RecoveryAction = Callable[[RecoveryContext], Awaitable[StudyMaterial]]


@dataclass
class RecoveryStrategy:
    type: StrategyType
    description: str
    automated: bool
    priority: int
    action: RecoveryAction | None = None

    def to_suggestion(self) -> RecoverySuggestion:
        return RecoverySuggestion(
            type=self.type,
            label=STRATEGY_LABELS.get(self.type, "Take Action"),
            description=self.description,
            automated=self.automated,
            priority=self.priority,
        )


class RecoverySuggestion(BaseModel):
    type: StrategyType
    label: str
    description: str
    automated: bool
    priority: int


class RecoveryResult(BaseModel):
    """Outcome of one recovery attempt.

    On success ``recovered_document`` is the persisted material. Otherwise it is
    the last persisted state, which the failed modification left untouched.
    """

    success: bool
    error_kind: ErrorKind
    title: str
    recovered_document: StudyMaterial | None = None
    applied_actions: list[str] = Field(default_factory=list)
    suggestions: list[RecoverySuggestion] = Field(default_factory=list)
    user_message: str


class RecoveryHandler:
    """Classify failures and run the matching recovery strategies."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self._config = config or EngineConfig()

    def classify(self, error: BaseException) -> ErrorKind:
        return classify_error(error)

    async def handle(self, error: BaseException, context: RecoveryContext) -> RecoveryResult:
        kind = self.classify(error)
        logger.warning(
            "Recovering from failure — material=%s kind=%s attempt=%d error=%s",
            context.material_id,
            kind,
            context.attempt_number,
            error,
        )
        context.previous_errors.append(error)
        return await self.execute(kind, self.strategies_for(kind, context), context)

    def strategies_for(self, kind: ErrorKind, context: RecoveryContext) -> list[RecoveryStrategy]:
        """Return the strategy menu for ``kind``, highest priority first."""
        can_retry = context.attempt_number < self._config.max_attempts
        strategies: list[RecoveryStrategy] = []

        match kind:
            case ErrorKind.VALIDATION_ERROR:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.VALIDATE_CONTENT,
                        "Fix validation errors and retry",
                        automated=False,
                        priority=8,
                    )
                )
                if can_retry:
                    strategies.append(
                        RecoveryStrategy(
                            StrategyType.RETRY,
                            "Retry operation with corrected data",
                            automated=False,
                            priority=6,
                        )
                    )
            case ErrorKind.DEPENDENCY_CONFLICT:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.FIX_DEPENDENCIES,
                        "Resolve dependency conflicts",
                        automated=True,
                        priority=9,
                        action=self._fix_dependencies,
                    )
                )
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.ROLLBACK,
                        "Rollback to previous version",
                        automated=False,
                        priority=5,
                    )
                )
            case ErrorKind.CONCURRENT_MODIFICATION:
                if can_retry:
                    strategies.append(
                        RecoveryStrategy(
                            StrategyType.RELOAD_MATERIAL,
                            "Reload material and retry operation",
                            automated=True,
                            priority=8,
                            action=self._reload,
                        )
                    )
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.ROLLBACK,
                        "Rollback to previous version",
                        automated=False,
                        priority=6,
                    )
                )
            case ErrorKind.STORAGE_ERROR:
                if can_retry:
                    strategies.append(
                        RecoveryStrategy(
                            StrategyType.RETRY,
                            "Retry storage operation",
                            automated=True,
                            priority=8,
                            action=self._retry_save,
                        )
                    )
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.ROLLBACK,
                        "Rollback to last saved state",
                        automated=False,
                        priority=5,
                    )
                )
            case ErrorKind.CONTENT_CORRUPTION:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.ROLLBACK,
                        "Restore from backup",
                        automated=False,
                        priority=9,
                    )
                )
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.VALIDATE_CONTENT,
                        "Validate and repair content",
                        automated=True,
                        priority=8,
                        action=self._repair_content,
                    )
                )
            case ErrorKind.QUOTA_EXCEEDED:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.VALIDATE_CONTENT,
                        "Remove unnecessary content to reduce size",
                        automated=False,
                        priority=8,
                    )
                )
            case ErrorKind.PERMISSION_DENIED:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.CONTACT_SUPPORT,
                        "Contact support for permission issues",
                        automated=False,
                        priority=5,
                    )
                )
            case ErrorKind.EXPORT_ERROR:
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.RETRY,
                        "Retry export with different format",
                        automated=False,
                        priority=7,
                    )
                )
            case _:
                if can_retry:
                    strategies.append(
                        RecoveryStrategy(
                            StrategyType.RETRY,
                            "Retry operation",
                            automated=False,
                            priority=5,
                        )
                    )
                strategies.append(
                    RecoveryStrategy(
                        StrategyType.ROLLBACK,
                        "Rollback changes",
                        automated=False,
                        priority=4,
                    )
                )

        return sorted(strategies, key=lambda s: s.priority, reverse=True)

    async def execute(
        self,
        kind: ErrorKind,
        strategies: list[RecoveryStrategy],
        context: RecoveryContext,
    ) -> RecoveryResult:
        """Run automated strategies and build the caller-facing result."""
        ranked = sorted(strategies, key=lambda s: s.priority, reverse=True)
        applied: list[str] = []
        recovered: StudyMaterial | None = None

        for strategy in ranked:
            if not strategy.automated or strategy.action is None:
                continue
            logger.info(
                "Attempting recovery strategy — material=%s strategy=%s priority=%d",
                context.material_id,
                strategy.type,
                strategy.priority,
            )
            try:
                document = await strategy.action(context)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Recovery strategy failed — material=%s strategy=%s",
                    context.material_id,
                    strategy.type,
                    exc_info=True,
                )
                continue
            applied.append(strategy.description)
            if strategy.priority >= SUCCESS_PRIORITY:
                recovered = document
                break

        manual = [s for s in ranked if not s.automated]
        if recovered is not None:
            message = f"Operation recovered successfully. Applied: {', '.join(applied)}"
            logger.info(
                "Recovery succeeded — material=%s kind=%s actions=%s",
                context.material_id,
                kind,
                applied,
            )
        elif manual:
            message = "Manual intervention required. Suggested actions: " + ", ".join(
                s.description for s in manual
            )
        else:
            message = "Unable to recover automatically. Please try again or contact support."

        return RecoveryResult(
            success=recovered is not None,
            error_kind=kind,
            title=ERROR_TITLES.get(kind, "Editor Error"),
            recovered_document=recovered if recovered is not None else context.previous_state,
            applied_actions=applied,
            suggestions=[s.to_suggestion() for s in manual],
            user_message=message,
        )

    # -- automated actions --

    async def _persist(self, context: RecoveryContext, document: StudyMaterial) -> StudyMaterial:
        if context.persist is None:
            msg = f"No persistence available to recover material {context.material_id}"
            raise RuntimeError(msg)
        await context.persist(document)
        return document

    async def _retry(
        self,
        context: RecoveryContext,
        attempt: Callable[[], Awaitable[StudyMaterial]],
    ) -> StudyMaterial:
        last_error: Exception | None = None
        for attempt_number in range(context.attempt_number + 1, self._config.max_attempts + 1):
            delay = _compute_retry_delay_seconds(attempt_number - 2, self._config.retry_base_delay)
            await asyncio.sleep(delay)
            try:
                document = await attempt()
            except ValidationFailed:
                raise
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                context.previous_errors.append(exc)
                logger.warning(
                    "Retry failed — material=%s attempt=%d/%d error=%s",
                    context.material_id,
                    attempt_number,
                    self._config.max_attempts,
                    exc,
                )
                continue
            logger.info(
                "Retry succeeded — material=%s attempt=%d",
                context.material_id,
                attempt_number,
            )
            return document
        if last_error is not None:
            raise last_error
        msg = f"No retry attempts left for material {context.material_id}"
        raise RuntimeError(msg)

    async def _retry_save(self, context: RecoveryContext) -> StudyMaterial:
        document = context.document_state
        if document is None:
            msg = f"No pending state to save for material {context.material_id}"
            raise RuntimeError(msg)
        return await self._retry(context, lambda: self._persist(context, document))

    async def _reload(self, context: RecoveryContext) -> StudyMaterial:
        reload = context.reload
        if reload is None:
            msg = f"No reload available for material {context.material_id}"
            raise RuntimeError(msg)
        return await self._retry(context, reload)

    async def _fix_dependencies(self, context: RecoveryContext) -> StudyMaterial:
        """Strip dangling references and break cycles, then persist."""
        if context.document_state is None:
            msg = f"No state to repair for material {context.material_id}"
            raise RuntimeError(msg)
        document = context.document_state.snapshot()
        known = {s.id for s in document.sections}
        for section in document.sections:
            deps = [d for d in dict.fromkeys(section.dependencies) if d in known and d != section.id]
            if deps != section.dependencies:
                logger.info(
                    "Removed invalid dependencies — material=%s section=%s",
                    document.id,
                    section.id,
                )
                section.dependencies = deps

        for dep_id, section_id in DependencyGraph(document.sections).cycle_breaking_edges():
            section = document.find_section(section_id)
            if section is not None:
                section.dependencies = [d for d in section.dependencies if d != dep_id]
        return await self._persist(context, document)

    async def _repair_content(self, context: RecoveryContext) -> StudyMaterial:
        """Backfill missing section fields and renormalize order, then persist."""
        if context.document_state is None:
            msg = f"No state to repair for material {context.material_id}"
            raise RuntimeError(msg)
        document = context.document_state.snapshot()

        seen: set[str] = set()
        sections = document.ordered_sections()
        for index, section in enumerate(sections):
            if not section.id or section.id in seen:
                section.id = new_id()
            seen.add(section.id)
            if not section.content.strip():
                section.content = _MISSING_CONTENT
            if not section.type:
                section.type = SectionType.TEXT
            section.order = index
        for section in sections:
            section.dependencies = [d for d in section.dependencies if d in seen]

        image_ids: set[str] = set()
        for image in document.images:
            if not image.id or image.id in image_ids:
                image.id = new_id()
            image_ids.add(image.id)

        document.sections = sections
        for name, value in count_statistics(sections).items():
            setattr(document.metadata, name, value)
        return await self._persist(context, document)
