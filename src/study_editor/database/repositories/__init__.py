"""Repository modules for each Cosmos DB container."""

from study_editor.database.repositories.history import HistoryRepository
from study_editor.database.repositories.materials import MaterialRepository

__all__ = [
    "HistoryRepository",
    "MaterialRepository",
]
