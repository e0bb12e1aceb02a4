"""Version store: append-only document history behind its own sessions.

Streaming runs outlive the request that started them, so the store does not
borrow the request's session. Every operation opens a short-lived session from
the factory, commits or rolls back, and returns plain frozen records that stay
valid after the session is closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from .deltas import ArtifactKind
from .exceptions import DocumentNotFoundError
from .models import Document, DocumentVersion
from .repository import DocumentRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionRecord:
    document_id: str
    index: int
    content: str
    created_at: datetime

    @classmethod
    def from_entity(cls, version: DocumentVersion) -> "VersionRecord":
        return cls(
            document_id=version.document_id,
            index=version.version_index,
            content=version.content,
            created_at=version.created_at,
        )


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    user_id: str
    kind: ArtifactKind
    title: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, document: Document) -> "DocumentRecord":
        return cls(
            id=document.id,
            user_id=document.user_id,
            kind=ArtifactKind(document.kind),
            title=document.title,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class VersionStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def create_document(
        self,
        *,
        document_id: str,
        user_id: str,
        kind: ArtifactKind,
        title: str,
        content: str,
    ) -> tuple[DocumentRecord, VersionRecord]:
        """Create the document together with its first version."""
        with self._session_factory() as db:
            repo = DocumentRepository(db)
            try:
                document = repo.create_document(
                    document_id=document_id, user_id=user_id, kind=kind.value, title=title
                )
                version = repo.add_version(document_id=document_id, content=content)
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Creating document %s failed", document_id)
                raise
            return DocumentRecord.from_entity(document), VersionRecord.from_entity(version)

    def append_version(self, document_id: str, content: str) -> VersionRecord:
        with self._session_factory() as db:
            repo = DocumentRepository(db)
            if repo.get_document(document_id) is None:
                raise DocumentNotFoundError(document_id)
            try:
                version = repo.add_version(document_id=document_id, content=content)
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Appending version to document %s failed", document_id)
                raise
            logger.info("Document %s now at version %d", document_id, version.version_index)
            return VersionRecord.from_entity(version)

    def get_version(self, document_id: str, index: int) -> VersionRecord | None:
        with self._session_factory() as db:
            version = DocumentRepository(db).get_version(document_id, index)
            return VersionRecord.from_entity(version) if version else None

    def get_latest(self, document_id: str) -> VersionRecord | None:
        with self._session_factory() as db:
            version = DocumentRepository(db).get_latest_version(document_id)
            return VersionRecord.from_entity(version) if version else None

    def list_versions(self, document_id: str) -> list[VersionRecord]:
        with self._session_factory() as db:
            return [VersionRecord.from_entity(v) for v in DocumentRepository(db).list_versions(document_id)]

    def get_document(self, document_id: str, *, user_id: str | None = None) -> DocumentRecord | None:
        with self._session_factory() as db:
            document = DocumentRepository(db).get_document(document_id, user_id=user_id)
            return DocumentRecord.from_entity(document) if document else None

    def rename_document(self, document_id: str, title: str) -> DocumentRecord:
        with self._session_factory() as db:
            repo = DocumentRepository(db)
            document = repo.get_document(document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            repo.rename_document(document, title)
            db.commit()
            return DocumentRecord.from_entity(document)
