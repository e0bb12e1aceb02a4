from __future__ import annotations

from typing import List

from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Core
    DATABASE_URL: str
    ALLOWED_ORIGINS: str | None = "*"
    LOG_LEVEL: str = "INFO"

    # Auth (tokens are issued elsewhere; we only verify them)
    AUTH_TOKEN_SECRET: str
    AUTH_TOKEN_TTL_SECONDS: int = 86400

    # Generation provider
    LLM_PROVIDER: str = "openai"
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: AnyUrl | str | None = None
    OPENAI_ORG: str | None = None
    OPENAI_PROJECT: str | None = None
    OPENAI_TEMPERATURE: float = 0.2
    OPENAI_USE_PREDICTED_OUTPUTS: bool = False

    # Artifact pipeline
    ARTIFACT_DEFAULT_MODEL: str = "gpt-4o-mini"
    ARTIFACT_SMOOTH_TEXT: bool = True
    # Commit the partial draft of a run whose source failed mid-stream.
    ARTIFACT_COMMIT_PARTIAL: bool = False
    ARTIFACT_SAVE_DEBOUNCE_SECONDS: float = 2.0

    @property
    def cors_origins(self) -> List[str]:
        if not self.ALLOWED_ORIGINS:
            return []
        raw = self.ALLOWED_ORIGINS
        if isinstance(raw, str):
            return [o.strip() for o in raw.split(",") if o.strip()]
        return list(raw)


settings = Settings()  # type: ignore[call-arg]
