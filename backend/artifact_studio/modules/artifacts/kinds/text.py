from __future__ import annotations

import re
from contextlib import aclosing
from typing import AsyncIterator

from artifact_studio.modules.llm.base import GenerationSource

from ..deltas import ArtifactKind
from ..prompts import TEXT_PROMPT, update_document_prompt
from .base import DeltaSink, DocumentHandler, Draft, ExistingDocument, GenerationRequest

_WORD = re.compile(r"\s*\S+\s+")


async def chunk_words(tokens: AsyncIterator[str]) -> AsyncIterator[str]:
    """Re-chunk a token stream so every chunk ends on a word boundary.

    Whatever is left when the stream ends is flushed as the last chunk, so the
    concatenation of the output always equals the concatenation of the input.
    """
    buffer = ""
    async with aclosing(tokens):
        async for token in tokens:
            buffer += token
            while True:
                match = _WORD.match(buffer)
                if match is None:
                    break
                yield match.group(0)
                buffer = buffer[match.end():]
    if buffer:
        yield buffer


class TextDocumentHandler(DocumentHandler):
    kind = ArtifactKind.TEXT

    def __init__(self, source: GenerationSource, *, smooth: bool = True) -> None:
        super().__init__(source)
        self.smooth = smooth

    async def on_create_document(self, request: GenerationRequest, sink: DeltaSink) -> str:
        stream = self.source.stream_text(system=TEXT_PROMPT, prompt=request.prompt, model=request.model)
        return await self._append_stream(stream, sink)

    async def on_update_document(
        self, document: ExistingDocument, request: GenerationRequest, sink: DeltaSink
    ) -> str:
        stream = self.source.stream_text(
            system=update_document_prompt(document.content, self.kind),
            prompt=request.prompt,
            model=request.model,
            prediction=document.content,
        )
        return await self._append_stream(stream, sink)

    async def _append_stream(self, stream: AsyncIterator[str], sink: DeltaSink) -> str:
        draft = Draft()
        if self.smooth:
            stream = chunk_words(stream)

        async def on_token(token: str) -> None:
            if not token:
                return
            draft.append(token)
            await self.emit(sink, token)

        await self.drive(stream, sink, draft, on_token)
        return draft.content
