from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Annotated, AsyncIterator, Iterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from artifact_studio.api.deps import CurrentUser, get_artifact_service, get_current_user

from .exceptions import DocumentBusyError, DocumentNotFoundError, VersionNotFoundError
from .schemas import (
    CreateArtifactRequest,
    DeltaEvent,
    DocumentExport,
    DocumentRead,
    RenameArtifactRequest,
    SaveVersionRequest,
    UpdateArtifactRequest,
    VersionRead,
)
from .service import ArtifactService
from .store import DocumentRecord, VersionRecord
from .streaming import RunHandle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/artifacts", tags=["artifacts"])

UserDep = Annotated[CurrentUser, Depends(get_current_user)]
ServiceDep = Annotated[ArtifactService, Depends(get_artifact_service)]


def _sse(event: DeltaEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


def _stream(handle: RunHandle) -> StreamingResponse:
    async def events() -> AsyncIterator[str]:
        try:
            async for delta in handle.deltas():
                yield _sse(DeltaEvent(type=delta.type, content=delta.content))
            outcome = await handle.outcome()
            yield _sse(DeltaEvent(type="finish", content=outcome.state.value))
        finally:
            # No-op after a normal end; on disconnect it stops the run.
            handle.cancel()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Document-Id": handle.document_id,
            "X-Document-Kind": handle.kind.value,
        },
    )


def _document_read(document: DocumentRecord, latest_index: int) -> DocumentRead:
    return DocumentRead(
        id=document.id,
        kind=document.kind,
        title=document.title,
        created_at=document.created_at,
        updated_at=document.updated_at,
        latest_version_index=latest_index,
    )


def _version_read(version: VersionRecord) -> VersionRead:
    return VersionRead(
        document_id=version.document_id,
        index=version.index,
        content=version.content,
        created_at=version.created_at,
    )


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except DocumentNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    except VersionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except DocumentBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post("")
async def create_artifact(
    payload: CreateArtifactRequest,
    service: ServiceDep,
    current_user: UserDep,
) -> StreamingResponse:
    handle = await service.create(
        user_id=current_user.id,
        kind=payload.kind,
        title=payload.title,
        model=payload.model,
    )
    logger.info("User %s started %s artifact %s", current_user.id, payload.kind.value, handle.document_id)
    return _stream(handle)


@router.post("/{document_id}/update")
async def update_artifact(
    document_id: str,
    payload: UpdateArtifactRequest,
    service: ServiceDep,
    current_user: UserDep,
) -> StreamingResponse:
    with _service_errors():
        handle = await service.update(
            user_id=current_user.id,
            document_id=document_id,
            description=payload.description,
            model=payload.model,
        )
    return _stream(handle)


@router.get("/{document_id}", response_model=DocumentRead)
async def read_artifact(
    document_id: str,
    service: ServiceDep,
    current_user: UserDep,
) -> DocumentRead:
    with _service_errors():
        document = await service.get_document(document_id, user_id=current_user.id)
        latest = await service.get_latest(user_id=current_user.id, document_id=document_id)
    return _document_read(document, latest.index)


@router.patch("/{document_id}", response_model=DocumentRead)
async def rename_artifact(
    document_id: str,
    payload: RenameArtifactRequest,
    service: ServiceDep,
    current_user: UserDep,
) -> DocumentRead:
    with _service_errors():
        document = await service.rename(user_id=current_user.id, document_id=document_id, title=payload.title)
        latest = await service.get_latest(user_id=current_user.id, document_id=document_id)
    return _document_read(document, latest.index)


@router.get("/{document_id}/versions", response_model=list[VersionRead])
async def list_versions(
    document_id: str,
    service: ServiceDep,
    current_user: UserDep,
) -> list[VersionRead]:
    with _service_errors():
        versions = await service.list_versions(user_id=current_user.id, document_id=document_id)
    return [_version_read(version) for version in versions]


@router.get("/{document_id}/versions/latest", response_model=VersionRead)
async def read_latest_version(
    document_id: str,
    service: ServiceDep,
    current_user: UserDep,
) -> VersionRead:
    with _service_errors():
        version = await service.get_latest(user_id=current_user.id, document_id=document_id)
    return _version_read(version)


@router.get("/{document_id}/versions/{index}", response_model=VersionRead)
async def read_version(
    document_id: str,
    index: int,
    service: ServiceDep,
    current_user: UserDep,
) -> VersionRead:
    with _service_errors():
        version = await service.get_version(user_id=current_user.id, document_id=document_id, index=index)
    return _version_read(version)


@router.post("/{document_id}/versions", response_model=VersionRead, status_code=status.HTTP_201_CREATED)
async def save_version(
    document_id: str,
    payload: SaveVersionRequest,
    service: ServiceDep,
    current_user: UserDep,
) -> VersionRead:
    with _service_errors():
        version = await service.save_version(
            user_id=current_user.id,
            document_id=document_id,
            content=payload.content,
        )
    return _version_read(version)


@router.get("/{document_id}/export", response_model=DocumentExport)
async def export_artifact(
    document_id: str,
    service: ServiceDep,
    current_user: UserDep,
) -> DocumentExport:
    with _service_errors():
        document = await service.get_document(document_id, user_id=current_user.id)
        versions = await service.list_versions(user_id=current_user.id, document_id=document_id)
    summary = _document_read(document, versions[-1].index if versions else -1)
    return DocumentExport(**summary.model_dump(), versions=[_version_read(v) for v in versions])
