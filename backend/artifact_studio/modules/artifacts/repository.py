from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import Document, DocumentVersion


class DocumentRepository:
    def __init__(self, db: Session):
        self.db = db

    # Documents ------------------------------------------------------------
    def create_document(self, *, document_id: str, user_id: str, kind: str, title: str) -> Document:
        document = Document(id=document_id, user_id=user_id, kind=kind, title=title)
        self.db.add(document)
        self.db.flush()
        return document

    def get_document(self, document_id: str, *, user_id: str | None = None) -> Document | None:
        document = self.db.get(Document, document_id)
        if document and user_id and document.user_id != user_id:
            return None
        return document

    def rename_document(self, document: Document, title: str) -> None:
        document.title = title
        self.db.add(document)

    # Versions -------------------------------------------------------------
    def add_version(self, *, document_id: str, content: str) -> DocumentVersion:
        """Append ``content`` as the next version of the document.

        The unique (document_id, version_index) constraint turns a racing
        append into an IntegrityError instead of a corrupted history.
        """
        next_index = self.version_count(document_id)
        version = DocumentVersion(document_id=document_id, version_index=next_index, content=content)
        self.db.add(version)
        document = self.db.get(Document, document_id)
        if document is not None:
            document.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return version

    def get_version(self, document_id: str, index: int) -> DocumentVersion | None:
        if index < 0:
            return None
        stmt = select(DocumentVersion).where(
            DocumentVersion.document_id == document_id,
            DocumentVersion.version_index == index,
        )
        return self.db.scalar(stmt)

    def get_latest_version(self, document_id: str) -> DocumentVersion | None:
        stmt = (
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_index.desc())
            .limit(1)
        )
        return self.db.scalar(stmt)

    def list_versions(self, document_id: str) -> Sequence[DocumentVersion]:
        stmt = (
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_index.asc())
        )
        return list(self.db.scalars(stmt))

    def version_count(self, document_id: str) -> int:
        stmt = select(func.count(DocumentVersion.id)).where(DocumentVersion.document_id == document_id)
        return self.db.scalar(stmt) or 0
