"""File-backed material store.

Layout under the base directory::

    <base>/<material_id>.json          current material
    <base>/history/<material_id>.json  history entries, oldest first

Writes go to a temporary file in the same directory and are moved into place
with ``os.replace`` so readers never observe a partially written document.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from study_editor.database.store import (
    DEFAULT_HISTORY_LIMIT,
    KeyedLocks,
    check_expected_version,
    newest_first,
    owned_by,
)
from study_editor.errors import ContentCorruption, StorageError
from study_editor.models.history import ModificationHistory
from study_editor.models.material import StudyMaterial

logger = logging.getLogger(__name__)

_history_adapter: TypeAdapter[list[ModificationHistory]] = TypeAdapter(
    list[ModificationHistory]
)


def _write_atomic(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


class FileSystemMaterialStore:
    """One JSON file per material and one per material history."""

    def __init__(
        self,
        base_dir: str | os.PathLike[str],
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._base_dir = Path(base_dir)
        self._history_dir = self._base_dir / "history"
        self._history_limit = history_limit
        self._locks = KeyedLocks()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    async def initialize(self) -> None:
        """Create the storage directories."""
        try:
            await asyncio.to_thread(self._history_dir.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to initialize storage at {self._base_dir}"
            raise StorageError(msg) from exc
        logger.info("File store ready — dir=%s", self._base_dir)

    def _material_path(self, material_id: str) -> Path:
        if not material_id or material_id in {".", ".."} or Path(material_id).name != material_id:
            msg = f"Invalid material identifier: {material_id!r}"
            raise StorageError(msg)
        return self._base_dir / f"{material_id}.json"

    def _history_path(self, material_id: str) -> Path:
        return self._history_dir / self._material_path(material_id).name

    def _decode_material(self, material_id: str, raw: bytes) -> StudyMaterial:
        try:
            return StudyMaterial.model_validate_json(raw)
        except PydanticValidationError as exc:
            msg = f"Stored material {material_id} is unreadable"
            raise ContentCorruption(msg) from exc

    async def _read_material(self, material_id: str) -> StudyMaterial | None:
        path = self._material_path(material_id)
        try:
            raw = await asyncio.to_thread(_read_bytes, path)
        except OSError as exc:
            msg = f"Failed to load material {material_id}"
            raise StorageError(msg) from exc
        return self._decode_material(material_id, raw) if raw is not None else None

    async def save(
        self, material: StudyMaterial, *, expected_version: int | None = None
    ) -> None:
        path = self._material_path(material.id)
        async with self._locks[material.id]:
            if expected_version is not None:
                check_expected_version(
                    material.id, await self._read_material(material.id), expected_version
                )
            try:
                await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
                await asyncio.to_thread(_write_atomic, path, material.model_dump_json().encode())
            except OSError as exc:
                msg = f"Failed to save material {material.id}"
                raise StorageError(msg) from exc
        logger.debug("Material saved — material=%s version=%d", material.id, material.version)

    async def load(self, material_id: str) -> StudyMaterial | None:
        async with self._locks[material_id]:
            return await self._read_material(material_id)

    async def delete(self, material_id: str) -> None:
        material_path = self._material_path(material_id)
        history_path = self._history_path(material_id)
        async with self._locks[material_id]:
            try:
                await asyncio.to_thread(material_path.unlink, missing_ok=True)
                await asyncio.to_thread(history_path.unlink, missing_ok=True)
            except OSError as exc:
                msg = f"Failed to delete material {material_id}"
                raise StorageError(msg) from exc

    async def list(self, actor_id: str | None = None) -> list[StudyMaterial]:
        try:
            paths = await asyncio.to_thread(lambda: sorted(self._base_dir.glob("*.json")))
        except OSError as exc:
            msg = f"Failed to list materials in {self._base_dir}"
            raise StorageError(msg) from exc

        materials: list[StudyMaterial] = []
        for path in paths:
            try:
                material = await self.load(path.stem)
            except ContentCorruption:
                logger.warning("Skipping unreadable material — path=%s", path, exc_info=True)
                continue
            if material is not None and owned_by(material, actor_id):
                materials.append(material)
        return newest_first(materials)

    async def exists(self, material_id: str) -> bool:
        path = self._material_path(material_id)
        return await asyncio.to_thread(path.is_file)

    async def _read_history(self, material_id: str) -> list[ModificationHistory]:
        path = self._history_path(material_id)
        try:
            raw = await asyncio.to_thread(_read_bytes, path)
        except OSError as exc:
            msg = f"Failed to load history for material {material_id}"
            raise StorageError(msg) from exc
        if raw is None:
            return []
        try:
            return _history_adapter.validate_json(raw)
        except PydanticValidationError as exc:
            msg = f"Stored history for material {material_id} is unreadable"
            raise ContentCorruption(msg) from exc

    async def save_history(self, entry: ModificationHistory) -> None:
        path = self._history_path(entry.material_id)
        async with self._locks[entry.material_id]:
            entries = await self._read_history(entry.material_id)
            entries.append(entry)
            if len(entries) > self._history_limit:
                entries = entries[-self._history_limit :]
            try:
                await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
                await asyncio.to_thread(_write_atomic, path, _history_adapter.dump_json(entries))
            except OSError as exc:
                msg = f"Failed to save history for material {entry.material_id}"
                raise StorageError(msg) from exc

    async def load_history(self, material_id: str) -> list[ModificationHistory]:
        async with self._locks[material_id]:
            return await self._read_history(material_id)
