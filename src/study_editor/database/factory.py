"""Build the configured material store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from study_editor.database.client import CosmosClient
from study_editor.database.cosmos import CosmosMaterialStore
from study_editor.database.filesystem import FileSystemMaterialStore
from study_editor.database.memory import InMemoryMaterialStore

if TYPE_CHECKING:
    from study_editor.config import Settings
    from study_editor.database.store import MaterialStore

logger = logging.getLogger(__name__)


async def create_store(
    settings: Settings, *, cosmos: CosmosClient | None = None
) -> MaterialStore:
    """Create and initialize the store named by ``STORAGE_BACKEND``.

    For the ``cosmos`` backend an already initialized client may be passed in;
    otherwise one is created from the Cosmos settings.
    """
    backend = settings.storage.backend.lower()
    limit = settings.storage.history_limit
    match backend:
        case "memory":
            store: MaterialStore = InMemoryMaterialStore(history_limit=limit)
        case "filesystem":
            file_store = FileSystemMaterialStore(settings.storage.data_dir, history_limit=limit)
            await file_store.initialize()
            store = file_store
        case "cosmos":
            if cosmos is None:
                cosmos = CosmosClient(settings.cosmos)
                await cosmos.initialize()
            store = CosmosMaterialStore(cosmos.database, history_limit=limit)
        case _:
            msg = f"Unknown storage backend: {settings.storage.backend}"
            raise ValueError(msg)
    logger.info("Material store created — backend=%s", backend)
    return store
