from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from artifact_studio.core.config import settings
from artifact_studio.core.database import SessionLocal, ensure_core_schema
from artifact_studio.core.logging_config import configure_logging
from artifact_studio.core.module_loader import collect_routers
from artifact_studio.modules.artifacts.registry import build_default_registry
from artifact_studio.modules.artifacts.service import ArtifactService
from artifact_studio.modules.artifacts.store import VersionStore
from artifact_studio.modules.llm import GenerationSource, build_generation_source

logger = logging.getLogger(__name__)


def create_app(generation_source: GenerationSource | None = None) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        source = generation_source or build_generation_source(settings)
        # An incomplete registry fails here, before the first request.
        registry = build_default_registry(source, settings)
        service = ArtifactService(registry, VersionStore(SessionLocal), settings)
        app.state.generation_source = source
        app.state.artifact_service = service
        logger.info("Artifact service ready (source=%s)", source.name())
        try:
            yield
        finally:
            await service.shutdown()
            await source.aclose()
            logger.info("Artifact service stopped")

    app = FastAPI(title="Artifact Studio API", version="0.1.0", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Document-Id", "X-Document-Kind"],
    )

    routers = collect_routers()
    # Ensure DB schema is present before routes are registered
    ensure_core_schema()

    for router in routers:
        app.include_router(router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
