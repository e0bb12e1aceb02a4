from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

from fastapi.concurrency import run_in_threadpool

from artifact_studio.core.config import Settings

from .deltas import ArtifactKind
from .exceptions import DocumentBusyError, DocumentNotFoundError, VersionNotFoundError
from .kinds import ExistingDocument, GenerationRequest
from .registry import HandlerRegistry
from .store import DocumentRecord, VersionRecord, VersionStore
from .streaming import GenerationRun, QueueSink, RunHandle, RunOutcome

logger = logging.getLogger(__name__)


class ArtifactService:
    """Entry point for create/update runs and for direct version writes.

    Holds the per-document admission gate: a document id is reserved from the
    moment a run (or a manual save) is admitted until it reaches a terminal
    state. Unrelated documents never wait on each other.
    """

    def __init__(self, registry: HandlerRegistry, store: VersionStore, config: Settings) -> None:
        self.registry = registry
        self.store = store
        self.default_model = config.ARTIFACT_DEFAULT_MODEL
        self.commit_partial = config.ARTIFACT_COMMIT_PARTIAL
        self._reserved: set[str] = set()
        self._tasks: dict[str, asyncio.Task[RunOutcome]] = {}

    # Admission ------------------------------------------------------------
    def is_busy(self, document_id: str) -> bool:
        return document_id in self._reserved

    def _reserve(self, document_id: str) -> None:
        if document_id in self._reserved:
            logger.info("Rejecting concurrent run for document %s", document_id)
            raise DocumentBusyError(document_id)
        self._reserved.add(document_id)

    def _release(self, document_id: str) -> None:
        self._reserved.discard(document_id)
        self._tasks.pop(document_id, None)

    @contextmanager
    def _holding(self, document_id: str) -> Iterator[None]:
        self._reserve(document_id)
        try:
            yield
        finally:
            self._release(document_id)

    # Runs -----------------------------------------------------------------
    async def create(
        self,
        *,
        user_id: str,
        kind: ArtifactKind,
        title: str,
        model: str | None = None,
    ) -> RunHandle:
        document_id = str(uuid.uuid4())
        self._reserve(document_id)
        request = GenerationRequest(prompt=title, model=model or self.default_model)
        return self._launch(document_id=document_id, kind=kind, request=request, user_id=user_id)

    async def update(
        self,
        *,
        user_id: str,
        document_id: str,
        description: str,
        model: str | None = None,
    ) -> RunHandle:
        self._reserve(document_id)
        try:
            existing = await run_in_threadpool(self._load_existing, document_id, user_id)
        except BaseException:
            # Includes cancellation of the caller while the lookup is in flight.
            self._release(document_id)
            raise
        request = GenerationRequest(prompt=description, model=model or self.default_model)
        return self._launch(
            document_id=document_id,
            kind=existing.kind,
            request=request,
            user_id=user_id,
            existing=existing,
        )

    def _load_existing(self, document_id: str, user_id: str) -> ExistingDocument:
        document = self.store.get_document(document_id, user_id=user_id)
        latest = self.store.get_latest(document_id) if document else None
        if document is None or latest is None:
            raise DocumentNotFoundError(document_id)
        return ExistingDocument(
            id=document.id,
            kind=document.kind,
            title=document.title,
            content=latest.content,
            version_index=latest.index,
        )

    def _launch(
        self,
        *,
        document_id: str,
        kind: ArtifactKind,
        request: GenerationRequest,
        user_id: str,
        existing: ExistingDocument | None = None,
    ) -> RunHandle:
        sink = QueueSink()
        run = GenerationRun(
            document_id=document_id,
            kind=kind,
            handler=self.registry.get(kind),
            store=self.store,
            sink=sink,
            request=request,
            user_id=user_id,
            existing=existing,
            commit_partial=self.commit_partial,
        )
        task = asyncio.create_task(self._execute(run, sink), name=f"artifact-run-{document_id}")
        self._tasks[document_id] = task
        return RunHandle(run, sink, task)

    async def _execute(self, run: GenerationRun, sink: QueueSink) -> RunOutcome:
        try:
            return await run.execute()
        finally:
            # Release before signalling the end so a client reacting to the
            # end of the stream can start the next run immediately.
            self._release(run.document_id)
            await sink.end()

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Versions -------------------------------------------------------------
    async def get_document(self, document_id: str, *, user_id: str) -> DocumentRecord:
        document = await run_in_threadpool(self.store.get_document, document_id, user_id=user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def get_latest(self, *, user_id: str, document_id: str) -> VersionRecord:
        await self.get_document(document_id, user_id=user_id)
        latest = await run_in_threadpool(self.store.get_latest, document_id)
        if latest is None:
            raise DocumentNotFoundError(document_id)
        return latest

    async def get_version(self, *, user_id: str, document_id: str, index: int) -> VersionRecord:
        await self.get_document(document_id, user_id=user_id)
        version = await run_in_threadpool(self.store.get_version, document_id, index)
        if version is None:
            raise VersionNotFoundError(f"Document {document_id} has no version {index}")
        return version

    async def list_versions(self, *, user_id: str, document_id: str) -> list[VersionRecord]:
        await self.get_document(document_id, user_id=user_id)
        return await run_in_threadpool(self.store.list_versions, document_id)

    async def save_version(self, *, user_id: str, document_id: str, content: str) -> VersionRecord:
        """Append a user-edited version. Rejected while a run holds the document."""
        await self.get_document(document_id, user_id=user_id)
        with self._holding(document_id):
            return await run_in_threadpool(self.store.append_version, document_id, content)

    async def rename(self, *, user_id: str, document_id: str, title: str) -> DocumentRecord:
        await self.get_document(document_id, user_id=user_id)
        return await run_in_threadpool(self.store.rename_document, document_id, title)
