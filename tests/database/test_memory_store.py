"""Tests for the in-memory material store."""

import gc

import pytest

from study_editor.database.memory import InMemoryMaterialStore
from study_editor.database.store import MaterialStore
from study_editor.errors import ConcurrentModification
from study_editor.models.history import ModificationHistory
from study_editor.models.section import SectionType


class TestInMemoryMaterialStore:
    """Test the map-backed store."""

    def test_satisfies_protocol(self, store) -> None:
        """Implement the store contract."""
        assert isinstance(store, MaterialStore)

    async def test_save_and_load_are_isolated_copies(self, store, make_material) -> None:
        """Keep stored state independent of caller objects."""
        material = make_material(("s1", SectionType.TEXT))
        await store.save(material)
        material.title = "changed after save"

        loaded = await store.load(material.id)
        loaded.sections.clear()

        again = await store.load(material.id)
        assert again.title == "Linear Algebra Notes"
        assert len(again.sections) == 1

    async def test_load_missing(self, store) -> None:
        """Return None for an unknown id."""
        assert await store.load("missing") is None
        assert await store.exists("missing") is False

    async def test_expected_version_guard(self, store, make_material) -> None:
        """Reject a save when the stored version moved on."""
        await store.save(make_material(version=2))

        with pytest.raises(ConcurrentModification) as exc_info:
            await store.save(make_material(version=2), expected_version=1)

        assert exc_info.value.actual_version == 2
        await store.save(make_material(version=3), expected_version=2)
        assert (await store.load("mat-1")).version == 3

    async def test_expected_version_for_missing_material(self, store, make_material) -> None:
        """Treat a vanished material as a concurrent change."""
        with pytest.raises(ConcurrentModification):
            await store.save(make_material(), expected_version=1)

    async def test_list_filters_and_sorts(self, store, make_material) -> None:
        """Filter by owner and sort by last modification, newest first."""
        older = make_material(material_id="a", owner_id="u1")
        newer = make_material(material_id="b", owner_id="u1")
        newer.updated_at = older.updated_at.replace(year=older.updated_at.year + 1)
        other = make_material(material_id="c", owner_id="u2")
        for material in (older, newer, other):
            await store.save(material)

        assert [m.id for m in await store.list("u1")] == ["b", "a"]
        assert len(await store.list()) == 3

    async def test_history_is_capped(self, make_material) -> None:
        """Evict the oldest entries beyond the limit."""
        store = InMemoryMaterialStore(history_limit=3)
        entries = [ModificationHistory(id=f"h{n}", material_id="mat-1") for n in range(5)]
        for entry in entries:
            await store.save_history(entry)

        history = await store.load_history("mat-1")

        assert [h.id for h in history] == ["h2", "h3", "h4"]

    async def test_delete_removes_history(self, store, make_material) -> None:
        """Drop the material and its history."""
        await store.save(make_material())
        await store.save_history(ModificationHistory(material_id="mat-1"))

        await store.delete("mat-1")

        assert await store.load("mat-1") is None
        assert await store.load_history("mat-1") == []

    async def test_locks_are_not_retained(self, store, make_material) -> None:
        """Drop per-material locks once no operation holds them."""
        for n in range(5):
            material = make_material(material_id=f"mat-{n}")
            await store.save(material)
            await store.load(f"missing-{n}")
            await store.delete(material.id)

        gc.collect()
        assert len(store._locks) == 0
