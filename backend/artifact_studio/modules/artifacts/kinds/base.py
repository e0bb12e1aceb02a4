from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, TypeVar

from artifact_studio.modules.llm.base import GenerationSource

from ..deltas import ArtifactKind, Delta
from ..exceptions import GenerationCancelled, GenerationSourceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeltaSink(ABC):
    """Outbound channel for the deltas of one run."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the consumer went away."""

    @abstractmethod
    async def write_data(self, delta: Delta) -> None:
        """Forward one delta. Raises GenerationCancelled when closed."""


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    model: str


@dataclass(frozen=True)
class ExistingDocument:
    id: str
    kind: ArtifactKind
    title: str
    content: str
    version_index: int


class Draft:
    """Running content of one generation run."""

    def __init__(self) -> None:
        self.content = ""

    def append(self, text: str) -> None:
        self.content += text

    def replace(self, text: str) -> None:
        self.content = text


class DocumentHandler(ABC):
    kind: ClassVar[ArtifactKind]

    def __init__(self, source: GenerationSource) -> None:
        self.source = source

    @abstractmethod
    async def on_create_document(self, request: GenerationRequest, sink: DeltaSink) -> str:
        """Generate a new document from ``request.prompt`` (the title)."""

    @abstractmethod
    async def on_update_document(
        self, document: ExistingDocument, request: GenerationRequest, sink: DeltaSink
    ) -> str:
        """Regenerate ``document`` following ``request.prompt`` (the description)."""

    async def emit(self, sink: DeltaSink, content: str) -> None:
        await sink.write_data(Delta.for_kind(self.kind, content))

    async def drive(
        self,
        stream: AsyncIterator[T],
        sink: DeltaSink,
        draft: Draft,
        on_item: Callable[[T], Awaitable[Any]],
    ) -> None:
        """Pull ``stream`` to exhaustion, handing every increment to ``on_item``.

        Stops early when ``on_item`` returns a truthy value. The transport is
        checked before each increment is handled and the stream is closed on
        every exit path. Source failures are re-raised as
        GenerationSourceError carrying the draft so far.
        """
        async with aclosing(stream):
            try:
                async for item in stream:
                    if sink.closed:
                        raise GenerationCancelled("transport closed")
                    if await on_item(item):
                        break
            except (GenerationCancelled, asyncio.CancelledError):
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("%s generation source failed: %s", self.kind.value, exc)
                raise GenerationSourceError(str(exc), partial=draft.content) from exc
