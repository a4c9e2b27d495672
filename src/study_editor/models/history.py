"""Modification history model — immutable before/after snapshots per mutation."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from study_editor.models.base import new_id, utcnow
from study_editor.models.material import StudyMaterial
from study_editor.models.operations import Operation


class HistoryKind(StrEnum):
    """Enumerate the events that append a history entry."""

    CREATED = "created"
    MODIFIED = "modified"
    RECOVERED = "recovered"


class ModificationHistory(BaseModel):
    """One applied mutation of a material.

    ``operation`` is absent only for the creation entry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    material_id: str
    kind: HistoryKind = HistoryKind.MODIFIED
    operation: Operation | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    actor_id: str | None = None
    previous_state: StudyMaterial | None = None
    new_state: StudyMaterial | None = None
