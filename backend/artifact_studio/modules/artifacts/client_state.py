"""Client-side view-state for a streamed artifact.

The state machine replays forwarded deltas into ``ArtifactViewState``
independently of persistence, then lets the user page through versions and
save edits. It never edits history: saving appends a new version through the
injected backend.

    hidden --delta--> streaming --stream end--> idle --delta--> streaming
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import AsyncIterator, Literal, Protocol

from fastapi.concurrency import run_in_threadpool

from artifact_studio.core.config import settings

from .deltas import ArtifactKind, Delta, STRUCTURED_KINDS, is_append_kind, parse_structured
from .store import VersionRecord, VersionStore

logger = logging.getLogger(__name__)

Direction = Literal["prev", "next", "latest"]


class ViewStatus(str, Enum):
    STREAMING = "streaming"
    IDLE = "idle"


class VersionBackend(Protocol):
    async def get_version(self, document_id: str, index: int) -> VersionRecord | None: ...

    async def list_versions(self, document_id: str) -> list[VersionRecord]: ...

    async def append_version(self, document_id: str, content: str) -> VersionRecord: ...


class StoreVersionBackend:
    """VersionBackend over an in-process VersionStore."""

    def __init__(self, store: VersionStore) -> None:
        self.store = store

    async def get_version(self, document_id: str, index: int) -> VersionRecord | None:
        return await run_in_threadpool(self.store.get_version, document_id, index)

    async def list_versions(self, document_id: str) -> list[VersionRecord]:
        return await run_in_threadpool(self.store.list_versions, document_id)

    async def append_version(self, document_id: str, content: str) -> VersionRecord:
        return await run_in_threadpool(self.store.append_version, document_id, content)


@dataclass(frozen=True)
class ArtifactViewState:
    document_id: str | None = None
    kind: ArtifactKind | None = None
    content: str = ""
    is_visible: bool = False
    status: ViewStatus = ViewStatus.IDLE
    # -1 until the first version is known
    current_version_index: int = -1
    latest_version_index: int = -1

    @property
    def is_hidden(self) -> bool:
        return not self.is_visible

    @property
    def is_current_version(self) -> bool:
        return self.current_version_index == self.latest_version_index


class ArtifactStateMachine:
    def __init__(self, backend: VersionBackend, *, debounce_seconds: float | None = None) -> None:
        self.backend = backend
        if debounce_seconds is None:
            debounce_seconds = settings.ARTIFACT_SAVE_DEBOUNCE_SECONDS
        self.debounce_seconds = debounce_seconds
        self.state = ArtifactViewState()
        self._pending_save: asyncio.Task[None] | None = None
        self._pending_edit: tuple[str, str] | None = None
        self._background_saves: set[asyncio.Task[None]] = set()

    # Streaming ------------------------------------------------------------
    def apply_delta(self, document_id: str, delta: Delta) -> bool:
        """Apply one forwarded delta. Returns False when it was dropped.

        Never raises on bad input: unknown types, foreign kinds and malformed
        payloads are logged and leave the state untouched. The payload is
        checked before a delta for another document replaces the view.
        """
        kind = delta.kind
        if kind is None:
            logger.debug("Ignoring unknown stream part %r", delta.type)
            return False
        if not isinstance(delta.content, str):
            logger.warning("Dropping %s with non-string content", delta.type)
            return False

        state = self.state
        switching = state.document_id != document_id
        if not switching and state.kind is not kind:
            logger.warning("Dropping %s for %s document %s", delta.type, state.kind, document_id)
            return False
        if kind in STRUCTURED_KINDS and parse_structured(kind, delta.content) is None:
            return False

        if switching:
            self.reset()
            state = ArtifactViewState(document_id=document_id, kind=kind)

        if is_append_kind(kind):
            # The first delta of a run starts from an empty buffer.
            base = state.content if state.status is ViewStatus.STREAMING else ""
            content = base + delta.content
        else:
            content = delta.content

        self.state = replace(state, content=content, is_visible=True, status=ViewStatus.STREAMING)
        return True

    async def on_stream_end(self) -> None:
        """Transport closed: settle into idle and pick up the committed version."""
        state = self.state
        if state.document_id is None:
            return
        versions = await self.backend.list_versions(state.document_id)
        latest = versions[-1].index if versions else -1
        self.state = replace(
            state,
            status=ViewStatus.IDLE,
            current_version_index=latest,
            latest_version_index=latest,
        )

    async def follow(self, document_id: str, deltas: AsyncIterator[Delta]) -> ArtifactViewState:
        async for delta in deltas:
            self.apply_delta(document_id, delta)
        await self.on_stream_end()
        return self.state

    # Versions -------------------------------------------------------------
    def can_navigate(self, direction: Direction) -> bool:
        state = self.state
        if state.status is not ViewStatus.IDLE or state.latest_version_index < 0:
            return False
        if direction == "prev":
            return state.current_version_index > 0
        return not state.is_current_version

    async def navigate(self, direction: Direction) -> bool:
        if not self.can_navigate(direction):
            return False
        state = self.state
        if direction == "prev":
            target = state.current_version_index - 1
        elif direction == "next":
            target = state.current_version_index + 1
        else:
            target = state.latest_version_index
        version = await self.backend.get_version(state.document_id, target)  # type: ignore[arg-type]
        if version is None:
            logger.warning("Version %d of %s is missing", target, state.document_id)
            return False
        self.state = replace(self.state, content=version.content, current_version_index=target)
        return True

    # Editing --------------------------------------------------------------
    def edit(self, content: str) -> bool:
        """Record a user edit and schedule a debounced save of the latest text."""
        state = self.state
        if state.document_id is None or state.status is not ViewStatus.IDLE or not state.is_current_version:
            return False
        self.state = replace(state, content=content)
        self._cancel_pending()
        self._pending_edit = (state.document_id, content)
        self._pending_save = asyncio.get_running_loop().create_task(self._save_later())
        return True

    async def flush(self) -> None:
        """Save a pending edit now and wait for saves already under way."""
        edit = self._take_pending()
        if edit is not None:
            await self._save(*edit)
        if self._background_saves:
            await asyncio.gather(*self._background_saves)

    def reset(self) -> None:
        """Tear down the view (navigation away or a new document).

        A pending edit is saved right away rather than dropped.
        """
        task = self._pending_save
        edit = self._take_pending()
        if edit is not None and task is not None:
            save = task.get_loop().create_task(self._save(*edit))
            self._background_saves.add(save)
            save.add_done_callback(self._background_saves.discard)
        self.state = ArtifactViewState()

    async def _save_later(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        edit = self._pending_edit
        self._pending_save = None
        self._pending_edit = None
        if edit is not None:
            await self._save(*edit)

    async def _save(self, document_id: str, content: str) -> None:
        try:
            version = await self.backend.append_version(document_id, content)
        except Exception:  # noqa: BLE001
            logger.exception("Saving edit to %s failed", document_id)
            return
        if self.state.document_id == document_id:
            self.state = replace(
                self.state,
                current_version_index=version.index,
                latest_version_index=version.index,
            )

    def _take_pending(self) -> tuple[str, str] | None:
        """Cancel the debounce timer and hand back the edit it was holding."""
        if self._pending_save is None or self._pending_save.done():
            self._pending_save = None
            self._pending_edit = None
            return None
        edit = self._pending_edit
        self._cancel_pending()
        return edit

    def _cancel_pending(self) -> None:
        if self._pending_save is not None and not self._pending_save.done():
            self._pending_save.cancel()
        self._pending_save = None
        self._pending_edit = None
