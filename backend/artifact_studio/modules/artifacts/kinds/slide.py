from __future__ import annotations

from typing import Any, AsyncIterator

from pydantic import BaseModel, Field

from ..deltas import ArtifactKind, is_valid_structured, serialize_structured
from ..prompts import SLIDE_PROMPT, update_document_prompt
from .base import DeltaSink, DocumentHandler, Draft, ExistingDocument, GenerationRequest


class Slide(BaseModel):
    title: str = Field(description="Slide title")
    content: list[str] = Field(description="Bullet points for the slide")


class Presentation(BaseModel):
    title: str = Field(description="Presentation title")
    slides: list[Slide] = Field(description="Array of slides")


class SlideDocumentHandler(DocumentHandler):
    """Streams a presentation object, re-serializing it whole on every change.

    Partial objects that have neither a title nor a slides list yet are not
    forwarded. Once the source is exhausted the last content is sent again so
    the consumer always sees a terminal delta.
    """

    kind = ArtifactKind.SLIDE

    async def on_create_document(self, request: GenerationRequest, sink: DeltaSink) -> str:
        stream = self.source.stream_object(
            system=SLIDE_PROMPT, prompt=request.prompt, model=request.model, schema=Presentation
        )
        return await self._replace_stream(stream, sink)

    async def on_update_document(
        self, document: ExistingDocument, request: GenerationRequest, sink: DeltaSink
    ) -> str:
        stream = self.source.stream_object(
            system=update_document_prompt(document.content, self.kind),
            prompt=request.prompt,
            model=request.model,
            schema=Presentation,
        )
        return await self._replace_stream(stream, sink)

    async def _replace_stream(self, stream: AsyncIterator[dict[str, Any]], sink: DeltaSink) -> str:
        draft = Draft()

        async def on_object(presentation: dict[str, Any]) -> None:
            if not is_valid_structured(self.kind, presentation):
                return
            content = serialize_structured(presentation)
            await self.emit(sink, content)
            draft.replace(content)

        await self.drive(stream, sink, draft, on_object)

        if draft.content:
            await self.emit(sink, draft.content)
        return draft.content
