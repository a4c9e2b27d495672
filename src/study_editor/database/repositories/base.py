"""Generic repository over one Cosmos DB container."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from azure.cosmos.exceptions import CosmosResourceNotFoundError
from pydantic import BaseModel

if TYPE_CHECKING:
    from azure.cosmos.aio import DatabaseProxy

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """CRUD helpers shared by every container repository.

    Subclasses set ``container_name``, ``partition_key_path`` and ``model_class``.
    """

    container_name: ClassVar[str]
    partition_key_path: ClassVar[str] = "/id"
    model_class: type[T]

    def __init__(self, database: DatabaseProxy) -> None:
        self._container = database.get_container_client(self.container_name)

    def _to_body(self, item: T) -> dict[str, Any]:
        return item.model_dump(mode="json", exclude_none=True)

    async def get(self, item_id: str, partition_key: str) -> T | None:
        """Fetch one item, treating soft-deleted items as absent."""
        try:
            data = await self._container.read_item(item=item_id, partition_key=partition_key)
        except CosmosResourceNotFoundError:
            return None
        if data.get("deleted_at") is not None:
            return None
        return self.model_class.model_validate(data)

    async def create(self, item: T) -> T:
        await self._container.create_item(body=self._to_body(item))
        return item

    async def upsert(self, item: T) -> T:
        await self._container.upsert_item(body=self._to_body(item))
        return item

    async def delete(self, item_id: str, partition_key: str) -> None:
        """Remove an item permanently."""
        try:
            await self._container.delete_item(item=item_id, partition_key=partition_key)
        except CosmosResourceNotFoundError:
            return

    async def query(
        self, query: str, parameters: list[dict[str, Any]] | None = None
    ) -> list[T]:
        """Run a parameterized SQL query and validate each row."""
        items = self._container.query_items(query=query, parameters=parameters or [])
        return [self.model_class.model_validate(item) async for item in items]
