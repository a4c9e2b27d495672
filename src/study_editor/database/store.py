"""Storage-agnostic contract for materials and their history."""

from __future__ import annotations

import asyncio
import weakref
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from study_editor.errors import ConcurrentModification

if TYPE_CHECKING:
    from study_editor.models.history import ModificationHistory
    from study_editor.models.material import StudyMaterial

DEFAULT_HISTORY_LIMIT = 100


class KeyedLocks:
    """Per-material ``asyncio.Lock`` objects, kept only while something holds one."""

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __getitem__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


@runtime_checkable
class MaterialStore(Protocol):
    """Persist whole materials and an append-only history per material.

    ``save`` is durable before it returns and ``load`` returns the most
    recently completed ``save``. When ``expected_version`` is given, ``save``
    raises ``ConcurrentModification`` unless the stored version still equals it.
    """

    async def save(
        self, material: StudyMaterial, *, expected_version: int | None = None
    ) -> None: ...

    async def load(self, material_id: str) -> StudyMaterial | None: ...

    async def delete(self, material_id: str) -> None: ...

    async def list(self, actor_id: str | None = None) -> list[StudyMaterial]: ...

    async def exists(self, material_id: str) -> bool: ...

    async def save_history(self, entry: ModificationHistory) -> None: ...

    async def load_history(self, material_id: str) -> list[ModificationHistory]: ...


def check_expected_version(
    material_id: str,
    stored: StudyMaterial | None,
    expected_version: int | None,
) -> None:
    """Raise ``ConcurrentModification`` when the stored version moved on."""
    if expected_version is None:
        return
    actual = stored.version if stored is not None else None
    if actual != expected_version:
        raise ConcurrentModification(material_id, expected_version, actual)


def owned_by(material: StudyMaterial, actor_id: str | None) -> bool:
    return actor_id is None or material.metadata.owner_id == actor_id


def newest_first(materials: list[StudyMaterial]) -> list[StudyMaterial]:
    return sorted(materials, key=lambda m: m.updated_at, reverse=True)
