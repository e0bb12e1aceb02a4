from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Literal

from pydantic import BaseModel, Field

from ..deltas import ArtifactKind, is_valid_structured, serialize_structured
from ..prompts import (
    CHART_PROMPT,
    STRICT_JSON_PROMPT_HINT,
    STRICT_JSON_SUFFIX,
    update_chart_prompt,
)
from .base import DeltaSink, DocumentHandler, Draft, ExistingDocument, GenerationRequest

logger = logging.getLogger(__name__)


class ChartConfig(BaseModel):
    type: Literal["bar", "line", "pie", "scatter", "area", "doughnut"] = Field(description="Chart type")
    title: str = Field(description="Chart title")
    data: list[dict[str, str | float]] = Field(description="Chart data array")
    xAxis: str | None = Field(default=None, description="X-axis field name")
    yAxis: str | None = Field(default=None, description="Y-axis field name")
    colorScheme: Literal["blue", "green", "purple", "orange", "red", "gradient", "rainbow"] | None = Field(
        default=None, description="Color scheme"
    )
    showLegend: bool | None = Field(default=None, description="Show legend")
    showGrid: bool | None = Field(default=None, description="Show grid lines")
    animation: bool | None = Field(default=None, description="Enable animations")


def is_valid_chart_json(content: str | None) -> bool:
    if not content:
        return False
    try:
        return is_valid_structured(ArtifactKind.CHART, json.loads(content))
    except ValueError:
        return False


class ChartDocumentHandler(DocumentHandler):
    """Chart configs are only forwarded once they carry a type and some data.

    When a run produces nothing usable the handler asks once more with a
    stricter instruction and keeps the first valid object. Updates prefer the
    existing chart over a retry when the existing chart is still valid.
    """

    kind = ArtifactKind.CHART

    async def on_create_document(self, request: GenerationRequest, sink: DeltaSink) -> str:
        stream = self.source.stream_object(
            system=CHART_PROMPT, prompt=request.prompt, model=request.model, schema=ChartConfig
        )
        draft = await self._valid_stream(stream, sink)
        if draft.content:
            await self.emit(sink, draft.content)
            return draft.content

        logger.warning("No valid chart data received, retrying with explicit JSON request")
        return await self._retry(
            system=f"{CHART_PROMPT}{STRICT_JSON_SUFFIX}",
            prompt=f"{request.prompt}{STRICT_JSON_PROMPT_HINT}",
            model=request.model,
            sink=sink,
        )

    async def on_update_document(
        self, document: ExistingDocument, request: GenerationRequest, sink: DeltaSink
    ) -> str:
        system = update_chart_prompt(document.content, request.prompt)
        stream = self.source.stream_object(
            system=system, prompt=request.prompt, model=request.model, schema=ChartConfig
        )
        draft = await self._valid_stream(stream, sink)
        if draft.content:
            return draft.content

        if is_valid_chart_json(document.content):
            logger.info("Chart update produced no valid data; keeping existing configuration")
            await self.emit(sink, document.content)
            return document.content

        logger.warning("No valid chart data received during update, retrying")
        return await self._retry(
            system=f"{system}{STRICT_JSON_SUFFIX}",
            prompt=f"{request.prompt}{STRICT_JSON_PROMPT_HINT}",
            model=request.model,
            sink=sink,
        )

    async def _valid_stream(self, stream: AsyncIterator[dict[str, Any]], sink: DeltaSink) -> Draft:
        draft = Draft()

        async def on_object(config: dict[str, Any]) -> None:
            if not is_valid_structured(self.kind, config):
                return
            content = serialize_structured(config)
            await self.emit(sink, content)
            draft.replace(content)

        await self.drive(stream, sink, draft, on_object)
        return draft

    async def _retry(self, *, system: str, prompt: str, model: str, sink: DeltaSink) -> str:
        stream = self.source.stream_object(system=system, prompt=prompt, model=model, schema=ChartConfig)
        draft = Draft()

        async def on_object(config: dict[str, Any]) -> bool:
            if not is_valid_structured(self.kind, config):
                return False
            content = serialize_structured(config)
            await self.emit(sink, content)
            draft.replace(content)
            return True

        await self.drive(stream, sink, draft, on_object)
        return draft.content
