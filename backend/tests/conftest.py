"""Test fixtures for Artifact Studio."""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Settings are read at import time, so the environment must be in place first.
_DB_DIR = tempfile.mkdtemp(prefix="artifact-studio-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR}/artifacts.db")
os.environ.setdefault("AUTH_TOKEN_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from pydantic import BaseModel  # noqa: E402

from artifact_studio.modules.artifacts.exceptions import GenerationCancelled  # noqa: E402
from artifact_studio.modules.artifacts.kinds.base import DeltaSink  # noqa: E402
from artifact_studio.modules.llm.base import GenerationSource  # noqa: E402


class ScriptedGenerationSource(GenerationSource):
    """In-memory source that replays scripted streams.

    Each ``stream_text``/``stream_object`` call consumes the next script. A
    script is a list of items; an Exception instance in the list is raised at
    that point. When ``gate`` is set the stream waits on it before yielding the
    item at ``gate_at``.
    """

    def __init__(
        self,
        *,
        texts: Iterable[list[Any]] = (),
        objects: Iterable[list[Any]] = (),
        gate: asyncio.Event | None = None,
        gate_at: int = 0,
    ) -> None:
        self.texts = list(texts)
        self.objects = list(objects)
        self.gate = gate
        self.gate_at = gate_at
        self.calls: list[dict[str, Any]] = []
        self.closed_streams = 0
        self.closed = False

    def name(self) -> str:
        return "scripted"

    def stream_text(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        prediction: str | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append({"method": "text", "system": system, "prompt": prompt, "model": model, "prediction": prediction})
        return self._replay(self.texts.pop(0) if self.texts else [])

    def stream_object(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        schema: type[BaseModel],
    ) -> AsyncIterator[dict[str, Any]]:
        self.calls.append({"method": "object", "system": system, "prompt": prompt, "model": model, "schema": schema})
        return self._replay(self.objects.pop(0) if self.objects else [])

    async def _replay(self, script: list[Any]) -> AsyncIterator[Any]:
        try:
            for position, item in enumerate(script):
                if self.gate is not None and position == self.gate_at:
                    await self.gate.wait()
                # Let consumers run between increments.
                await asyncio.sleep(0)
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed_streams += 1

    async def aclose(self) -> None:
        self.closed = True


class RecordingSink(DeltaSink):
    """DeltaSink that keeps every delta; can be closed after ``close_after`` writes."""

    def __init__(self, close_after: int | None = None) -> None:
        self.deltas: list[Any] = []
        self.close_after = close_after
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write_data(self, delta: Any) -> None:
        if self._closed:
            raise GenerationCancelled("transport closed")
        self.deltas.append(delta)
        if self.close_after is not None and len(self.deltas) >= self.close_after:
            self._closed = True

    @property
    def contents(self) -> list[str]:
        return [delta.content for delta in self.deltas]


@pytest.fixture
def store():
    from artifact_studio.core.database import Base, SessionLocal, engine
    from artifact_studio.modules.artifacts import models  # noqa: F401
    from artifact_studio.modules.artifacts.store import VersionStore

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return VersionStore(SessionLocal)


@pytest.fixture
def settings():
    from artifact_studio.core.config import settings as app_settings

    return app_settings


@pytest.fixture
def scripted_source() -> type[ScriptedGenerationSource]:
    return ScriptedGenerationSource


@pytest.fixture
def recording_sink() -> type[RecordingSink]:
    return RecordingSink
