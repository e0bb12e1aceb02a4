from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

from openai import AsyncOpenAI
from pydantic import BaseModel
from pydantic_core import from_json

from artifact_studio.core.config import Settings

from .base import GenerationSource

logger = logging.getLogger(__name__)


class OpenAIGenerationSource(GenerationSource):
    """Streaming wrapper around the OpenAI Chat Completions API."""

    def __init__(self, config: Settings) -> None:
        if not config.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY is not configured")
        self._client = AsyncOpenAI(
            api_key=config.OPENAI_API_KEY,
            base_url=str(config.OPENAI_BASE_URL) if config.OPENAI_BASE_URL else None,
            organization=config.OPENAI_ORG,
            project=config.OPENAI_PROJECT,
        )
        self._temperature = config.OPENAI_TEMPERATURE
        self._use_prediction = config.OPENAI_USE_PREDICTED_OUTPUTS

    def name(self) -> str:
        return "openai"

    async def stream_text(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        prediction: str | None = None,
    ) -> AsyncIterator[str]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "stream": True,
        }
        if prediction and self._use_prediction:
            payload["prediction"] = {"type": "content", "content": prediction}

        async for text in self._stream(payload):
            yield text

    async def stream_object(
        self,
        *,
        system: str,
        prompt: str,
        model: str,
        schema: type[BaseModel],
    ) -> AsyncIterator[dict[str, Any]]:
        schema_json = json.dumps(schema.model_json_schema())
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {
                    "role": "system",
                    "content": (
                        f"{system}\n\nRespond with a single JSON object that validates "
                        f"against this JSON schema:\n{schema_json}"
                    ),
                },
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
            "stream": True,
        }

        buffer = ""
        last: dict[str, Any] | None = None
        async for text in self._stream(payload):
            buffer += text
            try:
                parsed = from_json(buffer, allow_partial="trailing-strings")
            except ValueError:
                # Not yet parseable (e.g. only whitespace so far)
                continue
            if not isinstance(parsed, dict) or parsed == last:
                continue
            last = parsed
            yield parsed

    async def _stream(self, payload: dict[str, Any]) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(**payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("OpenAI streaming request failed: %s", exc)
            raise

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
        finally:
            await stream.close()

    async def aclose(self) -> None:
        await self._client.close()
