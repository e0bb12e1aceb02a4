"""One generation run: pull from the handler, forward deltas, commit once.

State machine::

    idle -> streaming -> committing -> done
               |            |
               +-> failed <-+
               +-> cancelled

A run commits at most one version and only from ``committing``. Closing the
transport while streaming ends the run as ``cancelled`` without touching the
store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from fastapi.concurrency import run_in_threadpool

from .deltas import ArtifactKind, Delta
from .exceptions import GenerationCancelled, GenerationSourceError
from .kinds import DeltaSink, DocumentHandler, ExistingDocument, GenerationRequest
from .store import VersionRecord, VersionStore

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RunState.DONE, RunState.FAILED, RunState.CANCELLED})


@dataclass(frozen=True)
class RunOutcome:
    document_id: str
    state: RunState
    version: VersionRecord | None = None
    error: str | None = None
    partial_committed: bool = False


_END = object()


class QueueSink(DeltaSink):
    """Delta channel between a run and its transport.

    The run writes, the transport drains. Order is FIFO. Once the transport
    calls ``close`` every further write raises GenerationCancelled.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write_data(self, delta: Delta) -> None:
        if self._closed:
            raise GenerationCancelled("transport closed")
        await self._queue.put(delta)

    def close(self) -> None:
        self._closed = True

    async def end(self) -> None:
        await self._queue.put(_END)

    async def drain(self) -> AsyncIterator[Delta]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]


class GenerationRun:
    def __init__(
        self,
        *,
        document_id: str,
        kind: ArtifactKind,
        handler: DocumentHandler,
        store: VersionStore,
        sink: DeltaSink,
        request: GenerationRequest,
        user_id: str,
        existing: ExistingDocument | None = None,
        commit_partial: bool = False,
    ) -> None:
        self.document_id = document_id
        self.kind = kind
        self.handler = handler
        self.store = store
        self.sink = sink
        self.request = request
        self.user_id = user_id
        self.existing = existing
        self.commit_partial = commit_partial
        self.state = RunState.IDLE

    @property
    def is_create(self) -> bool:
        return self.existing is None

    async def execute(self) -> RunOutcome:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Run for {self.document_id} already started")
        self.state = RunState.STREAMING
        logger.info(
            "Starting %s run for %s document %s (model=%s)",
            "create" if self.is_create else "update",
            self.kind.value,
            self.document_id,
            self.request.model,
        )

        try:
            content = await self._generate()
        except GenerationCancelled:
            return self._finish(RunState.CANCELLED)
        except asyncio.CancelledError:
            self.state = RunState.CANCELLED
            raise
        except GenerationSourceError as exc:
            return await self._fail_with_partial(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Generation run for %s failed", self.document_id)
            return self._finish(RunState.FAILED, error=str(exc))

        if self.sink.closed:
            return self._finish(RunState.CANCELLED)
        if not content:
            return self._finish(RunState.FAILED, error="Generation produced no content")

        self.state = RunState.COMMITTING
        try:
            version = await self._commit(content)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Committing version for %s failed", self.document_id)
            return self._finish(RunState.FAILED, error=str(exc))
        return self._finish(RunState.DONE, version=version)

    async def _generate(self) -> str:
        if self.existing is None:
            return await self.handler.on_create_document(self.request, self.sink)
        return await self.handler.on_update_document(self.existing, self.request, self.sink)

    async def _commit(self, content: str) -> VersionRecord:
        if self.is_create:
            _, version = await run_in_threadpool(
                self.store.create_document,
                document_id=self.document_id,
                user_id=self.user_id,
                kind=self.kind,
                title=self.request.prompt,
                content=content,
            )
            return version
        return await run_in_threadpool(self.store.append_version, self.document_id, content)

    async def _fail_with_partial(self, exc: GenerationSourceError) -> RunOutcome:
        if not (self.commit_partial and exc.partial) or self.sink.closed:
            return self._finish(RunState.FAILED, error=str(exc))
        self.state = RunState.COMMITTING
        try:
            version = await self._commit(exc.partial)
        except Exception:  # noqa: BLE001
            logger.exception("Committing partial draft for %s failed", self.document_id)
            return self._finish(RunState.FAILED, error=str(exc))
        logger.warning("Committed partial draft for %s after source error", self.document_id)
        return self._finish(RunState.FAILED, version=version, error=str(exc), partial_committed=True)

    def _finish(
        self,
        state: RunState,
        *,
        version: VersionRecord | None = None,
        error: str | None = None,
        partial_committed: bool = False,
    ) -> RunOutcome:
        self.state = state
        if state is RunState.DONE:
            logger.info("Run for %s committed version %d", self.document_id, version.index if version else -1)
        elif state is RunState.CANCELLED:
            logger.info("Run for %s cancelled by transport; nothing committed", self.document_id)
        else:
            logger.warning("Run for %s failed: %s", self.document_id, error)
        return RunOutcome(
            document_id=self.document_id,
            state=state,
            version=version,
            error=error,
            partial_committed=partial_committed,
        )


class RunHandle:
    """What callers get back from create/update: the delta stream and the outcome."""

    def __init__(self, run: GenerationRun, sink: QueueSink, task: "asyncio.Task[RunOutcome]") -> None:
        self.run = run
        self.sink = sink
        self.task = task

    @property
    def document_id(self) -> str:
        return self.run.document_id

    @property
    def kind(self) -> ArtifactKind:
        return self.run.kind

    @property
    def state(self) -> RunState:
        return self.run.state

    def deltas(self) -> AsyncIterator[Delta]:
        return self.sink.drain()

    def cancel(self) -> None:
        """Close the transport side; the run stops at its next increment."""
        self.sink.close()

    async def outcome(self) -> RunOutcome:
        return await self.task
