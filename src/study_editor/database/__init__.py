"""Material persistence: the store contract and its implementations."""

from study_editor.database.cosmos import CosmosMaterialStore
from study_editor.database.factory import create_store
from study_editor.database.filesystem import FileSystemMaterialStore
from study_editor.database.memory import InMemoryMaterialStore
from study_editor.database.store import MaterialStore

__all__ = [
    "CosmosMaterialStore",
    "FileSystemMaterialStore",
    "InMemoryMaterialStore",
    "MaterialStore",
    "create_store",
]
