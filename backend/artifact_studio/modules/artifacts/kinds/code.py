from __future__ import annotations

from typing import Any, AsyncIterator

from pydantic import BaseModel

from ..deltas import ArtifactKind
from ..prompts import CODE_PROMPT, update_document_prompt
from .base import DeltaSink, DocumentHandler, Draft, ExistingDocument, GenerationRequest


class CodeArtifact(BaseModel):
    code: str


class CodeDocumentHandler(DocumentHandler):
    kind = ArtifactKind.CODE

    async def on_create_document(self, request: GenerationRequest, sink: DeltaSink) -> str:
        stream = self.source.stream_object(
            system=CODE_PROMPT, prompt=request.prompt, model=request.model, schema=CodeArtifact
        )
        return await self._replace_stream(stream, sink)

    async def on_update_document(
        self, document: ExistingDocument, request: GenerationRequest, sink: DeltaSink
    ) -> str:
        stream = self.source.stream_object(
            system=update_document_prompt(document.content, self.kind),
            prompt=request.prompt,
            model=request.model,
            schema=CodeArtifact,
        )
        return await self._replace_stream(stream, sink)

    async def _replace_stream(self, stream: AsyncIterator[dict[str, Any]], sink: DeltaSink) -> str:
        draft = Draft()

        async def on_object(partial: dict[str, Any]) -> None:
            code = partial.get("code")
            if not code or not isinstance(code, str):
                return
            await self.emit(sink, code)
            draft.replace(code)

        await self.drive(stream, sink, draft, on_object)
        return draft.content
