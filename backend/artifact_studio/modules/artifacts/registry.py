from __future__ import annotations

import logging
from typing import Iterable

from artifact_studio.core.config import Settings
from artifact_studio.modules.llm.base import GenerationSource

from .deltas import ArtifactKind
from .exceptions import RegistryConfigurationError
from .kinds import (
    ChartDocumentHandler,
    CodeDocumentHandler,
    DocumentHandler,
    SlideDocumentHandler,
    TextDocumentHandler,
)

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Maps each document kind to the handler that generates it.

    Every consistency check happens at registration and in ``validate``, so
    ``get`` is a plain lookup on a registry that was verified at startup.
    """

    def __init__(self, handlers: Iterable[DocumentHandler] = ()) -> None:
        self._handlers: dict[ArtifactKind, DocumentHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: DocumentHandler) -> None:
        kind = getattr(handler, "kind", None)
        if not isinstance(kind, ArtifactKind):
            raise RegistryConfigurationError(f"{type(handler).__name__} does not declare a known kind")
        if kind in self._handlers:
            raise RegistryConfigurationError(f"Kind {kind.value!r} is already registered")
        self._handlers[kind] = handler

    def validate(self) -> "HandlerRegistry":
        missing = [kind.value for kind in ArtifactKind if kind not in self._handlers]
        if missing:
            raise RegistryConfigurationError(f"No handler registered for: {', '.join(missing)}")
        return self

    def get(self, kind: ArtifactKind) -> DocumentHandler:
        return self._handlers[kind]

    def kinds(self) -> list[ArtifactKind]:
        return list(self._handlers)


def build_default_registry(source: GenerationSource, config: Settings) -> HandlerRegistry:
    registry = HandlerRegistry(
        [
            TextDocumentHandler(source, smooth=config.ARTIFACT_SMOOTH_TEXT),
            CodeDocumentHandler(source),
            SlideDocumentHandler(source),
            ChartDocumentHandler(source),
        ]
    )
    logger.info("Registered artifact handlers: %s", ", ".join(k.value for k in registry.kinds()))
    return registry.validate()
