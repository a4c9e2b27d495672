"""Repository for the materials container (partitioned by /id)."""

from __future__ import annotations

from typing import Any, cast

from azure.core import MatchConditions
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from study_editor.database.repositories.base import BaseRepository
from study_editor.errors import ConcurrentModification
from study_editor.models.base import utcnow
from study_editor.models.material import StudyMaterial

_HTTP_PRECONDITION_FAILED = 412


class MaterialRepository(BaseRepository[StudyMaterial]):
    """Provide data access for the materials container."""

    container_name = "materials"
    partition_key_path = "/id"
    model_class = StudyMaterial

    async def list_active(self, owner_id: str | None = None) -> list[StudyMaterial]:
        """Fetch live materials, most recently updated first."""
        if owner_id is None:
            return await self.query(
                "SELECT * FROM c WHERE NOT IS_DEFINED(c.deleted_at)"
                " ORDER BY c.updated_at DESC",
            )
        return await self.query(
            "SELECT * FROM c WHERE c.metadata.owner_id = @owner_id"
            " AND NOT IS_DEFINED(c.deleted_at)"
            " ORDER BY c.updated_at DESC",
            [{"name": "@owner_id", "value": owner_id}],
        )

    async def replace_if_version(self, material: StudyMaterial, expected_version: int) -> None:
        """Replace a material only if the stored copy is still ``expected_version``.

        The version check and the write are tied together by the item etag, so
        a writer that slips in between them makes the replace fail with 412.
        """
        try:
            data = cast(
                "dict[str, Any]",
                await self._container.read_item(item=material.id, partition_key=material.id),
            )
        except CosmosResourceNotFoundError as exc:
            raise ConcurrentModification(material.id, expected_version, None) from exc

        actual = data.get("version") if data.get("deleted_at") is None else None
        if actual != expected_version:
            raise ConcurrentModification(material.id, expected_version, actual)

        try:
            await self._container.replace_item(
                item=material.id,
                body=self._to_body(material),
                etag=data.get("_etag"),
                match_condition=MatchConditions.IfNotModified,
            )
        except CosmosHttpResponseError as exc:
            if exc.status_code == _HTTP_PRECONDITION_FAILED:
                raise ConcurrentModification(material.id, expected_version, None) from exc
            raise

    async def soft_delete(self, material: StudyMaterial) -> None:
        material.deleted_at = utcnow()
        await self._container.replace_item(item=material.id, body=self._to_body(material))
