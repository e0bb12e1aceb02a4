from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, constr

from .deltas import ArtifactKind


class CreateArtifactRequest(BaseModel):
    kind: ArtifactKind
    title: constr(min_length=1, max_length=256)  # type: ignore[valid-type]
    model: str | None = None


class UpdateArtifactRequest(BaseModel):
    description: constr(min_length=1, max_length=8000)  # type: ignore[valid-type]
    model: str | None = None


class RenameArtifactRequest(BaseModel):
    title: constr(min_length=1, max_length=256)  # type: ignore[valid-type]


class SaveVersionRequest(BaseModel):
    content: constr(min_length=1)  # type: ignore[valid-type]


class VersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: str
    index: int = Field(..., ge=0)
    content: str
    created_at: datetime


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ArtifactKind
    title: str
    created_at: datetime
    updated_at: datetime
    latest_version_index: int


class DocumentExport(DocumentRead):
    versions: List[VersionRead]


class DeltaEvent(BaseModel):
    type: str
    content: str
