"""Repository for the material_history container (partitioned by /material_id)."""

from __future__ import annotations

from study_editor.database.repositories.base import BaseRepository
from study_editor.models.history import ModificationHistory


class HistoryRepository(BaseRepository[ModificationHistory]):
    container_name = "material_history"
    partition_key_path = "/material_id"
    model_class = ModificationHistory

    async def list_by_material(self, material_id: str) -> list[ModificationHistory]:
        """Fetch every history entry of a material, oldest first."""
        return await self.query(
            "SELECT * FROM c WHERE c.material_id = @material_id ORDER BY c.timestamp ASC",
            [{"name": "@material_id", "value": material_id}],
        )

    async def append(self, entry: ModificationHistory, *, limit: int) -> None:
        """Store an entry and evict the oldest ones beyond ``limit``."""
        await self.create(entry)
        entries = await self.list_by_material(entry.material_id)
        for stale in entries[: max(0, len(entries) - limit)]:
            await self.delete(stale.id, stale.material_id)

    async def delete_for_material(self, material_id: str) -> None:
        for entry in await self.list_by_material(material_id):
            await self.delete(entry.id, material_id)
