"""Cosmos DB backed material store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from azure.cosmos.exceptions import CosmosHttpResponseError

from study_editor.database.repositories import HistoryRepository, MaterialRepository
from study_editor.database.store import DEFAULT_HISTORY_LIMIT
from study_editor.errors import StorageError

if TYPE_CHECKING:
    from azure.cosmos.aio import DatabaseProxy

    from study_editor.models.history import ModificationHistory
    from study_editor.models.material import StudyMaterial

logger = logging.getLogger(__name__)


class CosmosMaterialStore:
    """Store materials in ``materials`` and their history in ``material_history``.

    Deleted materials are soft deleted; their history is removed outright.
    """

    def __init__(
        self,
        database: DatabaseProxy,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._materials = MaterialRepository(database)
        self._history = HistoryRepository(database)
        self._history_limit = history_limit

    async def save(
        self, material: StudyMaterial, *, expected_version: int | None = None
    ) -> None:
        try:
            if expected_version is None:
                await self._materials.upsert(material)
            else:
                await self._materials.replace_if_version(material, expected_version)
        except CosmosHttpResponseError as exc:
            msg = f"Failed to save material {material.id}"
            raise StorageError(msg) from exc
        logger.debug("Material saved — material=%s version=%d", material.id, material.version)

    async def load(self, material_id: str) -> StudyMaterial | None:
        try:
            return await self._materials.get(material_id, material_id)
        except CosmosHttpResponseError as exc:
            msg = f"Failed to load material {material_id}"
            raise StorageError(msg) from exc

    async def delete(self, material_id: str) -> None:
        try:
            material = await self._materials.get(material_id, material_id)
            if material is not None:
                await self._materials.soft_delete(material)
            await self._history.delete_for_material(material_id)
        except CosmosHttpResponseError as exc:
            msg = f"Failed to delete material {material_id}"
            raise StorageError(msg) from exc

    async def list(self, actor_id: str | None = None) -> list[StudyMaterial]:
        try:
            return await self._materials.list_active(actor_id)
        except CosmosHttpResponseError as exc:
            raise StorageError("Failed to list materials") from exc

    async def exists(self, material_id: str) -> bool:
        return await self.load(material_id) is not None

    async def save_history(self, entry: ModificationHistory) -> None:
        try:
            await self._history.append(entry, limit=self._history_limit)
        except CosmosHttpResponseError as exc:
            msg = f"Failed to save history for material {entry.material_id}"
            raise StorageError(msg) from exc

    async def load_history(self, material_id: str) -> list[ModificationHistory]:
        try:
            return await self._history.list_by_material(material_id)
        except CosmosHttpResponseError as exc:
            msg = f"Failed to load history for material {material_id}"
            raise StorageError(msg) from exc
