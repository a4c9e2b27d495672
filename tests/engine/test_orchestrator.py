"""Tests for the modification service."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from study_editor.engine.orchestrator import ModificationService
from study_editor.engine.recovery import ErrorKind
from study_editor.engine.validator import OperationValidator
from study_editor.errors import (
    ConcurrentModification,
    MaterialNotFound,
    MutationPreconditionError,
    StorageError,
    ValidationFailed,
)
from study_editor.models.export import ExportFormat, ExportOptions
from study_editor.models.history import HistoryKind
from study_editor.models.image import ImageDraft, ImageFormat, ImageMetadata
from study_editor.models.material import MaterialMetadata
from study_editor.models.operations import (
    AddSection,
    ModificationRequest,
    RegenerateImage,
    RemoveSection,
    ReorderSections,
)
from study_editor.models.section import ContentSection, SectionDraft, SectionType
from study_editor.models.validation import ValidationResult


def _heading(content: str = "Intro", position: int = 0) -> AddSection:
    return AddSection(section=SectionDraft(type=SectionType.HEADING, content=content), position=position)


def _sections(*ids: str) -> list[ContentSection]:
    return [ContentSection(id=i, type=SectionType.TEXT, content=f"Body {i}") for i in ids]


class TestLifecycle:
    """Test creating, listing and deleting materials."""

    async def test_create_material(self, service, store) -> None:
        """Start at version 1 with a creation history entry."""
        material = await service.create_material(
            "Calculus", sections=_sections("s1", "s2"), actor_id="user-1"
        )

        assert material.version == 1
        assert material.created_at == material.updated_at
        assert [s.order for s in material.sections] == [0, 1]
        assert material.metadata.owner_id == "user-1"
        assert material.metadata.total_sections == 2
        assert await store.exists(material.id)

        history = await service.get_history(material.id)
        assert len(history) == 1
        assert history[0].kind == HistoryKind.CREATED
        assert history[0].operation is None
        assert history[0].previous_state is None

    async def test_load_unknown_material(self, service) -> None:
        """Raise MaterialNotFound for an unknown id."""
        with pytest.raises(MaterialNotFound):
            await service.load_material("missing")

    async def test_list_filters_by_owner(self, store, engine_config) -> None:
        """Return only the actor's materials, newest first."""
        times = iter(datetime(2025, 1, day, tzinfo=UTC) for day in (1, 2, 3))
        service = ModificationService(store, config=engine_config, clock=lambda: next(times))
        first = await service.create_material("A", actor_id="u1")
        await service.create_material("B", actor_id="u2")
        third = await service.create_material("C", metadata=MaterialMetadata(owner_id="u1"))

        listed = await service.list_materials("u1")

        assert [m.id for m in listed] == [third.id, first.id]
        assert len(await service.list_materials()) == 3

    async def test_delete_material(self, service, store) -> None:
        """Remove the material and its history."""
        material = await service.create_material("Gone")

        await service.delete_material(material.id)

        assert await store.exists(material.id) is False
        assert await store.load_history(material.id) == []
        with pytest.raises(MaterialNotFound):
            await service.delete_material(material.id)

    async def test_validate_material(self, service, store, make_material) -> None:
        """Audit the stored material."""
        material = make_material(("A", SectionType.TEXT, ["ghost"]))
        await store.save(material)

        result = await service.validate_material(material.id)

        assert result.codes() == ["BROKEN_DEPENDENCY"]

    async def test_export_material(self, service) -> None:
        """Render the stored material."""
        material = await service.create_material("Vectors", sections=_sections("s1"))

        result = await service.export_material(material.id, ExportOptions(format=ExportFormat.MARKDOWN))

        assert result.filename == "Vectors.md"
        assert "Body s1" in result.content


class TestModify:
    """Test the modification flow."""

    async def test_add_section_to_empty_material(self, service) -> None:
        """Produce one section at order 0 and version 2."""
        material = await service.create_material("Empty")

        result = await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert len(result.sections) == 1
        assert result.sections[0].order == 0
        assert result.sections[0].content == "Intro"
        assert result.version == 2
        stored = await service.load_material(material.id)
        assert stored.version == 2

    async def test_history_records_both_states(self, service) -> None:
        """Append previous and new snapshots for each change."""
        material = await service.create_material("Empty")
        request = ModificationRequest(material_id=material.id, operation=_heading(), actor_id="u1")

        await service.modify(request)

        history = await service.get_history(material.id)
        assert [h.kind for h in history] == [HistoryKind.CREATED, HistoryKind.MODIFIED]
        entry = history[-1]
        assert entry.operation == request.operation
        assert entry.actor_id == "u1"
        assert entry.previous_state.version == 1
        assert entry.new_state.version == 2

    async def test_remove_with_dependents_is_rejected(self, service, store) -> None:
        """Leave the material and history unchanged on validation failure."""
        material = await service.create_material(
            "Deps",
            sections=[
                ContentSection(id="A", type=SectionType.TEXT, content="a"),
                ContentSection(id="B", type=SectionType.TEXT, content="b", dependencies=["A"]),
            ],
        )

        with pytest.raises(ValidationFailed) as exc_info:
            await service.modify(
                ModificationRequest(material_id=material.id, operation=RemoveSection(target_id="A"))
            )

        assert "DEPENDENCY_CONFLICT" in exc_info.value.result.codes()
        stored = await store.load(material.id)
        assert stored.version == 1
        assert [s.id for s in stored.sections] == ["A", "B"]
        assert len(await store.load_history(material.id)) == 1

    async def test_reorder_sections(self, service) -> None:
        """Assign orders from the requested sequence."""
        material = await service.create_material("Order", sections=_sections("s1", "s2", "s3"))

        result = await service.modify(
            ModificationRequest(
                material_id=material.id,
                operation=ReorderSections(section_ids=["s3", "s1", "s2"]),
            )
        )

        assert {s.id: s.order for s in result.sections} == {"s3": 0, "s1": 1, "s2": 2}

    async def test_unknown_material(self, service) -> None:
        """Fail fast before validation."""
        with pytest.raises(MaterialNotFound):
            await service.modify(ModificationRequest(material_id="nope", operation=_heading()))

    async def test_timestamp_never_moves_backwards(self, store, engine_config) -> None:
        """Keep the last-modified time when the clock is behind."""
        late = datetime(2030, 1, 1, tzinfo=UTC)
        early = datetime(2020, 1, 1, tzinfo=UTC)
        times = iter([late, early])
        service = ModificationService(store, config=engine_config, clock=lambda: next(times))
        material = await service.create_material("Clock")

        result = await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert result.updated_at == late
        assert result.created_at == late

    async def test_regenerate_uses_service_clock(self, store, engine_config) -> None:
        """Stamp the regenerated image with the injected clock."""
        fixed = datetime(2030, 6, 1, tzinfo=UTC)
        service = ModificationService(store, config=engine_config, clock=lambda: fixed)
        draft = ImageDraft(
            base64_data="iVBORw0KGgo=",
            metadata=ImageMetadata(
                width=64,
                height=64,
                format=ImageFormat.PNG,
                generated_at=datetime(2020, 1, 1, tzinfo=UTC),
            ),
        )
        material = await service.create_material("Clock", images=[draft])
        image_id = material.images[0].id

        result = await service.modify(
            ModificationRequest(
                material_id=material.id,
                operation=RegenerateImage(target_id=image_id, prompt="unit circle"),
            )
        )

        assert result.images[0].metadata.generated_at == fixed
        assert result.updated_at == fixed

    async def test_history_failure_does_not_undo_write(self, service, store) -> None:
        """Keep the saved material when history cannot be written."""
        material = await service.create_material("History")
        store.save_history = AsyncMock(side_effect=StorageError("history unavailable"))

        result = await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert result.version == 2
        assert (await store.load(material.id)).version == 2

    async def test_precondition_error_is_not_recovered(self, store, engine_config) -> None:
        """Surface mutator precondition failures directly."""
        validator = MagicMock(spec=OperationValidator)
        validator.validate.return_value = ValidationResult()
        recovery = MagicMock()
        recovery.handle = AsyncMock()
        service = ModificationService(
            store, config=engine_config, validator=validator, recovery=recovery
        )
        material = await service.create_material("Pre")

        with pytest.raises(MutationPreconditionError):
            await service.modify(
                ModificationRequest(material_id=material.id, operation=RemoveSection(target_id="ghost"))
            )

        recovery.handle.assert_not_awaited()


class TestModifyRecovery:
    """Test failures after validation."""

    async def test_persistent_save_failure(self, service, store) -> None:
        """Retry three times, then re-raise with a rollback suggestion."""
        material = await service.create_material("Flaky")
        store.save = AsyncMock(side_effect=StorageError("disk full"))

        with pytest.raises(StorageError) as exc_info:
            await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert store.save.await_count == 3
        recovery = exc_info.value.recovery
        assert recovery.success is False
        assert "rollback" in recovery.user_message.lower()
        assert recovery.recovered_document.version == 1
        assert recovery.recovered_document.sections == []
        del store.save
        assert (await store.load(material.id)).version == 1

    async def test_unexpected_store_error_is_retried(self, service, store) -> None:
        """Treat any save failure as a storage error and retry it."""
        material = await service.create_material("Flaky")
        store.save = AsyncMock(side_effect=RuntimeError("connection reset by peer"))

        with pytest.raises(StorageError) as exc_info:
            await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert store.save.await_count == 3
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.recovery.error_kind == ErrorKind.STORAGE_ERROR
        del store.save
        assert (await store.load(material.id)).version == 1

    async def test_transient_save_failure_recovers(self, service, store, monkeypatch) -> None:
        """Return the saved material after a successful retry."""
        material = await service.create_material("Flaky")
        real_save = store.save
        calls = []

        async def flaky_save(doc, *, expected_version=None):
            calls.append(doc.version)
            if len(calls) == 1:
                raise StorageError("temporary outage")
            await real_save(doc, expected_version=expected_version)

        monkeypatch.setattr(store, "save", flaky_save)

        result = await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert calls == [2, 2]
        assert result.version == 2
        assert (await store.load(material.id)).version == 2
        history = await store.load_history(material.id)
        assert history[-1].kind == HistoryKind.RECOVERED

    async def test_concurrent_writer_triggers_reload(self, service, store, monkeypatch) -> None:
        """Reapply the operation on top of a concurrent change."""
        material = await service.create_material("Race")
        real_save = store.save
        raced = []

        async def racing_save(doc, *, expected_version=None):
            if not raced:
                raced.append(True)
                other = await store.load(doc.id)
                other.title = "Renamed elsewhere"
                other.version += 1
                await real_save(other)
            await real_save(doc, expected_version=expected_version)

        monkeypatch.setattr(store, "save", racing_save)

        result = await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert result.version == 3
        assert result.title == "Renamed elsewhere"
        assert [s.content for s in result.sections] == ["Intro"]

    async def test_concurrent_conflict_that_persists(self, service, store) -> None:
        """Re-raise the conflict when every attempt loses the race."""
        material = await service.create_material("Race")
        store.save = AsyncMock(side_effect=ConcurrentModification(material.id, 1, 2))

        with pytest.raises(ConcurrentModification) as exc_info:
            await service.modify(ModificationRequest(material_id=material.id, operation=_heading()))

        assert exc_info.value.recovery.error_kind == "CONCURRENT_MODIFICATION"
        assert "Rollback to previous version" in exc_info.value.recovery.user_message

    async def test_broken_stored_dependencies_are_repaired(self, service, store, make_material) -> None:
        """Repair dangling references found after applying an operation."""
        material = make_material(("A", SectionType.TEXT), ("B", SectionType.TEXT, ["ghost"]))
        await store.save(material)

        result = await service.modify(
            ModificationRequest(material_id=material.id, operation=_heading("End", position=2))
        )

        assert result.version == 2
        assert result.find_section("B").dependencies == []
        assert [s.content for s in result.ordered_sections()][-1] == "End"
        stored = await store.load(material.id)
        assert stored.find_section("B").dependencies == []
