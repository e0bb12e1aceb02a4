from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from pydantic import BaseModel


class GenerationSource(ABC):
    """Abstract contract for streaming generation providers.

    Both streams are lazy, single-pass and pull-based: nothing is requested
    from the provider until the caller iterates, and the only way to cancel is
    to stop iterating and close the iterator.
    """

    @abstractmethod
    def stream_text(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        prediction: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield free-form text tokens."""

    @abstractmethod
    def stream_object(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        schema: type[BaseModel],
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield successive partial objects shaped after ``schema``.

        Each item is the whole object parsed so far, not a diff.
        """

    @abstractmethod
    def name(self) -> str:
        """Return provider identifier."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
