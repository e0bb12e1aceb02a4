from __future__ import annotations

import logging

from artifact_studio.core.config import Settings

from .base import GenerationSource
from .openai_provider import OpenAIGenerationSource

logger = logging.getLogger(__name__)


def build_generation_source(config: Settings) -> GenerationSource:
    """Instantiate the configured generation provider.

    Called once at application startup; the instance is owned by the app and
    closed on shutdown.
    """
    provider_name = (config.LLM_PROVIDER or "openai").lower()
    logger.info("Initialising generation provider: %s", provider_name)
    if provider_name in {"openai", "gpt", "openai_chat"}:
        return OpenAIGenerationSource(config)
    raise ValueError(f"Unsupported LLM provider: {provider_name}")
