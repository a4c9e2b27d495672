"""Shared fixtures for building materials and services."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from hypothesis import HealthCheck, settings

from study_editor.config import EngineConfig
from study_editor.database.memory import InMemoryMaterialStore
from study_editor.engine.orchestrator import ModificationService
from study_editor.models.image import GeneratedImage, ImageFormat, ImageMetadata
from study_editor.models.material import MaterialMetadata, StudyMaterial, count_statistics
from study_editor.models.section import ContentSection, SectionType

MaterialFactory = Callable[..., StudyMaterial]

settings.register_profile(
    "study-editor", deadline=None, suppress_health_check=[HealthCheck.too_slow]
)
settings.load_profile("study-editor")


def build_material(
    *entries: tuple[str, SectionType] | tuple[str, SectionType, list[str]],
    images: int = 0,
    material_id: str = "mat-1",
    version: int = 1,
    owner_id: str | None = None,
) -> StudyMaterial:
    """Build a material whose sections follow ``entries`` in order.

    Each entry is ``(id, type)`` or ``(id, type, dependencies)``.
    """
    sections = [
        ContentSection(
            id=entry[0],
            type=entry[1],
            content=f"Content of {entry[0]}",
            order=index,
            dependencies=list(entry[2]) if len(entry) > 2 else [],
        )
        for index, entry in enumerate(entries)
    ]
    return StudyMaterial(
        id=material_id,
        title="Linear Algebra Notes",
        sections=sections,
        images=[
            GeneratedImage(
                id=f"img-{n}",
                base64_data="iVBORw0KGgo=",
                metadata=ImageMetadata(width=320, height=200, format=ImageFormat.PNG),
            )
            for n in range(1, images + 1)
        ],
        metadata=MaterialMetadata(owner_id=owner_id, **count_statistics(sections)),
        version=version,
    )


@pytest.fixture
def make_material() -> MaterialFactory:
    """Return the material builder."""
    return build_material


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine limits with no retry delay."""
    return EngineConfig(
        max_sections=100,
        large_content_chars=10_000,
        max_attempts=3,
        retry_base_delay=0.0,
        detect_cycles=True,
    )


@pytest.fixture
def store() -> InMemoryMaterialStore:
    return InMemoryMaterialStore()


@pytest.fixture
def service(store: InMemoryMaterialStore, engine_config: EngineConfig) -> ModificationService:
    return ModificationService(store, config=engine_config)
