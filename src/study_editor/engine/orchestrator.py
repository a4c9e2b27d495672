"""Material modification service — the engine's entry point.

A modification loads the material, validates the operation, applies it to a
copy, bumps the version, audits the result, saves it under a version guard and
appends a history entry. Failures after validation go to the recovery handler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING

from study_editor.config import EngineConfig
from study_editor.engine.mutator import apply_operation
from study_editor.engine.recovery import RecoveryContext, RecoveryHandler
from study_editor.engine.validator import OperationValidator
from study_editor.errors import (
    ContentCorruption,
    ContentModificationError,
    DependencyConflict,
    MaterialNotFound,
    MutationPreconditionError,
    StorageError,
    ValidationFailed,
)
from study_editor.export.renderer import MaterialExporter
from study_editor.models.base import utcnow
from study_editor.models.history import HistoryKind, ModificationHistory
from study_editor.models.image import GeneratedImage, ImageDraft
from study_editor.models.material import MaterialMetadata, StudyMaterial, count_statistics
from study_editor.models.section import ContentSection, SectionDraft
from study_editor.models.validation import ValidationResult

if TYPE_CHECKING:
    from study_editor.database.store import MaterialStore
    from study_editor.models.export import ExportOptions, ExportResult
    from study_editor.models.operations import ModificationRequest

logger = logging.getLogger(__name__)

_CORRUPTION_CODES = {"DUPLICATE_SECTION_ID", "DUPLICATE_IMAGE_ID"}


class ModificationService:
    """Apply operations to stored materials and manage their lifecycle."""

    def __init__(
        self,
        store: MaterialStore,
        *,
        config: EngineConfig | None = None,
        validator: OperationValidator | None = None,
        recovery: RecoveryHandler | None = None,
        exporter: MaterialExporter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._validator = validator or OperationValidator(self._config)
        self._recovery = recovery or RecoveryHandler(self._config)
        self._exporter = exporter or MaterialExporter()
        self._clock = clock

    # -- lifecycle --

    async def create_material(
        self,
        title: str,
        sections: Iterable[SectionDraft] = (),
        images: Iterable[ImageDraft] = (),
        metadata: MaterialMetadata | None = None,
        actor_id: str | None = None,
    ) -> StudyMaterial:
        """Create, persist and record a new material at version 1."""
        now = self._clock()
        section_list = [
            ContentSection.model_validate({**draft.model_dump(), "order": index})
            for index, draft in enumerate(sections)
        ]
        meta = metadata.model_copy(deep=True) if metadata else MaterialMetadata()
        if actor_id is not None and meta.owner_id is None:
            meta.owner_id = actor_id
        for name, value in count_statistics(section_list).items():
            setattr(meta, name, value)

        material = StudyMaterial(
            title=title,
            sections=section_list,
            images=[GeneratedImage.model_validate(draft.model_dump()) for draft in images],
            metadata=meta,
            version=1,
            created_at=now,
            updated_at=now,
        )
        await self._store.save(material)
        await self._append_history(
            ModificationHistory(
                material_id=material.id,
                kind=HistoryKind.CREATED,
                timestamp=now,
                actor_id=actor_id,
                new_state=material.snapshot(),
            )
        )
        logger.info("Material created — material=%s sections=%d", material.id, len(section_list))
        return material

    async def load_material(self, material_id: str) -> StudyMaterial:
        material = await self._store.load(material_id)
        if material is None:
            raise MaterialNotFound(material_id)
        return material

    async def list_materials(self, actor_id: str | None = None) -> list[StudyMaterial]:
        return await self._store.list(actor_id)

    async def delete_material(self, material_id: str) -> None:
        if not await self._store.exists(material_id):
            raise MaterialNotFound(material_id)
        await self._store.delete(material_id)
        logger.info("Material deleted — material=%s", material_id)

    async def get_history(self, material_id: str) -> list[ModificationHistory]:
        return await self._store.load_history(material_id)

    async def validate_material(self, material_id: str) -> ValidationResult:
        """Audit the stored material's structural integrity."""
        return self._validator.audit(await self.load_material(material_id))

    async def export_material(self, material_id: str, options: ExportOptions) -> ExportResult:
        return self._exporter.export(await self.load_material(material_id), options)

    # -- modification --

    async def modify(self, request: ModificationRequest) -> StudyMaterial:
        """Apply one operation and return the persisted material.

        Raises ``MaterialNotFound`` for an unknown material and
        ``ValidationFailed`` when the operation is rejected. Any later failure
        is handed to recovery; if recovery cannot fix it the original error is
        re-raised with the recovery result attached.
        """
        material = await self.load_material(request.material_id)
        self._validate(material, request)

        previous = material.snapshot()
        pending: StudyMaterial | None = None
        try:
            pending = self._mutate(material, request)
            self._check_integrity(pending)
            await self._persist(pending, previous=previous, request=request)
        except MutationPreconditionError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Material modification failed — material=%s op=%s error=%s",
                request.material_id,
                request.operation.type,
                exc,
            )
            return await self._recover(exc, request, previous=previous, pending=pending)

        logger.info(
            "Material modified — material=%s op=%s version=%d",
            pending.id,
            request.operation.type,
            pending.version,
        )
        return pending

    def _validate(self, material: StudyMaterial, request: ModificationRequest) -> None:
        result = self._validator.validate(material, request.operation)
        if not result.valid:
            logger.info(
                "Modification rejected — material=%s op=%s codes=%s",
                material.id,
                request.operation.type,
                ",".join(result.codes()),
            )
            raise ValidationFailed(result)
        if result.warnings:
            logger.info(
                "Modification warnings — material=%s op=%s codes=%s",
                material.id,
                request.operation.type,
                ",".join(result.warning_codes()),
            )

    def _mutate(self, material: StudyMaterial, request: ModificationRequest) -> StudyMaterial:
        now = max(self._clock(), material.updated_at)
        updated = apply_operation(material, request.operation, now=now)
        updated.version = material.version + 1
        updated.updated_at = now
        return updated

    def _check_integrity(self, material: StudyMaterial) -> None:
        audit = self._validator.audit(material)
        if audit.valid:
            return
        codes = set(audit.codes())
        messages = "; ".join(issue.message for issue in audit.blocking_errors)
        if codes & _CORRUPTION_CODES:
            raise ContentCorruption(messages, details=audit.model_dump(mode="json"))
        raise DependencyConflict(messages, details=audit.model_dump(mode="json"))

    async def _persist(
        self,
        material: StudyMaterial,
        *,
        previous: StudyMaterial,
        request: ModificationRequest,
        kind: HistoryKind = HistoryKind.MODIFIED,
    ) -> None:
        """Save under the version guard, then record the change.

        Store failures outside the error taxonomy are raised as ``StorageError``.
        """
        try:
            await self._store.save(material, expected_version=previous.version)
        except ContentModificationError:
            raise
        except Exception as exc:
            msg = f"Failed to save material {material.id}: {exc}"
            raise StorageError(msg) from exc
        await self._append_history(
            ModificationHistory(
                material_id=material.id,
                kind=kind,
                operation=request.operation,
                timestamp=material.updated_at,
                actor_id=request.actor_id,
                previous_state=previous,
                new_state=material.snapshot(),
            )
        )

    async def _append_history(self, entry: ModificationHistory) -> None:
        try:
            await self._store.save_history(entry)
        except Exception:  # noqa: BLE001
            logger.warning(
                "History append failed — material=%s kind=%s",
                entry.material_id,
                entry.kind,
                exc_info=True,
            )

    async def _reload_and_apply(self, request: ModificationRequest) -> StudyMaterial:
        """Rerun a modification against freshly loaded state, without recovery."""
        material = await self.load_material(request.material_id)
        self._validate(material, request)
        previous = material.snapshot()
        updated = self._mutate(material, request)
        self._check_integrity(updated)
        await self._persist(updated, previous=previous, request=request, kind=HistoryKind.RECOVERED)
        return updated

    async def _recover(
        self,
        error: Exception,
        request: ModificationRequest,
        *,
        previous: StudyMaterial,
        pending: StudyMaterial | None,
    ) -> StudyMaterial:
        context = RecoveryContext(
            material_id=request.material_id,
            operation=request.operation,
            document_state=pending if pending is not None else previous.snapshot(),
            previous_state=previous,
            actor_id=request.actor_id,
            session_id=request.session_id,
            attempt_number=1,
            persist=partial(
                self._persist, previous=previous, request=request, kind=HistoryKind.RECOVERED
            ),
            reload=partial(self._reload_and_apply, request),
        )
        result = await self._recovery.handle(error, context)
        if result.success and result.recovered_document is not None:
            logger.info(
                "Material modified after recovery — material=%s version=%d actions=%s",
                request.material_id,
                result.recovered_document.version,
                result.applied_actions,
            )
            return result.recovered_document

        if isinstance(error, ContentModificationError):
            error.recovery = result
        raise error
