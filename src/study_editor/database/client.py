"""Cosmos DB connection for the material store.

The store keeps materials and their history in two containers. With
``AZURE_COSMOS_PROVISION`` set, the database and both containers are created on
startup with the partition keys the repositories query by.
"""

from __future__ import annotations

import logging

from azure.cosmos import PartitionKey
from azure.cosmos.aio import CosmosClient as AzureCosmosClient
from azure.cosmos.aio import DatabaseProxy

from study_editor.config import CosmosConfig
from study_editor.database.repositories import HistoryRepository, MaterialRepository

logger = logging.getLogger(__name__)

MATERIAL_CONTAINERS: dict[str, str] = {
    repo.container_name: repo.partition_key_path
    for repo in (MaterialRepository, HistoryRepository)
}


class CosmosClient:
    """Owns the async Cosmos DB client and the material database reference."""

    def __init__(self, config: CosmosConfig) -> None:
        self._config = config
        self._client: AzureCosmosClient | None = None
        self._database: DatabaseProxy | None = None

    async def initialize(self) -> None:
        """Connect and, when configured, provision the material containers."""
        if not self._config.endpoint:
            raise RuntimeError("AZURE_COSMOS_ENDPOINT is not configured")
        self._client = AzureCosmosClient(self._config.endpoint, credential=self._config.key)
        if self._config.provision:
            self._database = await self._client.create_database_if_not_exists(
                id=self._config.database
            )
            for name, path in MATERIAL_CONTAINERS.items():
                await self._database.create_container_if_not_exists(
                    id=name, partition_key=PartitionKey(path=path)
                )
                logger.info("Container ready — database=%s container=%s", self._config.database, name)
        else:
            self._database = self._client.get_database_client(self._config.database)
        logger.info("Cosmos client connected — database=%s", self._config.database)

    async def close(self) -> None:
        """Close the underlying client."""
        if self._client:
            await self._client.close()
            self._client = None
            self._database = None

    @property
    def database(self) -> DatabaseProxy:
        if self._database is None:
            raise RuntimeError("CosmosClient not initialized — call initialize() first")
        return self._database
