"""In-memory material store for tests and local development."""

from __future__ import annotations

import logging
from collections import defaultdict

from study_editor.database.store import (
    DEFAULT_HISTORY_LIMIT,
    KeyedLocks,
    check_expected_version,
    newest_first,
    owned_by,
)
from study_editor.models.history import ModificationHistory
from study_editor.models.material import StudyMaterial

logger = logging.getLogger(__name__)


class InMemoryMaterialStore:
    """Map-backed store; values are copied on the way in and out."""

    def __init__(self, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._materials: dict[str, StudyMaterial] = {}
        self._history: dict[str, list[ModificationHistory]] = defaultdict(list)
        self._locks = KeyedLocks()
        self._history_limit = history_limit

    async def save(
        self, material: StudyMaterial, *, expected_version: int | None = None
    ) -> None:
        async with self._locks[material.id]:
            check_expected_version(
                material.id, self._materials.get(material.id), expected_version
            )
            self._materials[material.id] = material.snapshot()
        logger.debug("Material saved — material=%s version=%d", material.id, material.version)

    async def load(self, material_id: str) -> StudyMaterial | None:
        async with self._locks[material_id]:
            material = self._materials.get(material_id)
            return material.snapshot() if material is not None else None

    async def delete(self, material_id: str) -> None:
        async with self._locks[material_id]:
            self._materials.pop(material_id, None)
            self._history.pop(material_id, None)

    async def list(self, actor_id: str | None = None) -> list[StudyMaterial]:
        materials = [m.snapshot() for m in self._materials.values() if owned_by(m, actor_id)]
        return newest_first(materials)

    async def exists(self, material_id: str) -> bool:
        return material_id in self._materials

    async def save_history(self, entry: ModificationHistory) -> None:
        async with self._locks[entry.material_id]:
            entries = self._history[entry.material_id]
            entries.append(entry.model_copy(deep=True))
            if len(entries) > self._history_limit:
                del entries[: len(entries) - self._history_limit]

    async def load_history(self, material_id: str) -> list[ModificationHistory]:
        return [entry.model_copy(deep=True) for entry in self._history.get(material_id, [])]

    def clear(self) -> None:
        self._materials.clear()
        self._history.clear()
