"""Application configuration.

``Settings`` reads the environment once; the pipeline itself only ever sees
the immutable ``PipelineConfig`` built from it.
"""
from __future__ import annotations

from dataclasses import dataclass

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from figmatron.models.protocol import QueryMode, RouteOverride

DEFAULT_MODEL = "gemini-3-flash-preview"
AVAILABLE_MODELS = (
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
    "gemini-2.5-flash",
)


@dataclass(frozen=True)
class PipelineConfig:
    """Per-orchestrator configuration value injected at construction."""

    api_key: str
    model: str = DEFAULT_MODEL
    route_override: RouteOverride = "auto"
    auto_screenshot_modify: bool = True
    screenshot_for_create_ask: bool = False
    max_screenshot_mb: float = 3
    context_timeout_s: float = 20.0
    insert_timeout_s: float = 10.0

    @property
    def max_screenshot_bytes(self) -> int:
        return int(self.max_screenshot_mb * 1024 * 1024)

    def screenshot_enabled_for(self, mode: QueryMode) -> bool:
        if mode == "vectorize":
            return True
        if mode == "modify":
            return self.auto_screenshot_modify
        return self.screenshot_for_create_ask


class Settings(BaseSettings):
    """Runtime settings loaded from .env and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="FIGMATRON_", extra="ignore"
    )

    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "FIGMATRON_GEMINI_API_KEY"),
    )
    gemini_model: str = DEFAULT_MODEL
    route_override: RouteOverride = "auto"
    auto_screenshot_modify: bool = True
    screenshot_for_create_ask: bool = False
    max_screenshot_mb: float = 3
    context_timeout_s: float = 20.0
    insert_timeout_s: float = 10.0
    database_url: str = Field(
        default="sqlite:///figmatron.db",
        validation_alias=AliasChoices("DATABASE_URL", "FIGMATRON_DATABASE_URL"),
    )
    log_level: str = "INFO"

    def pipeline_config(self, **overrides: object) -> PipelineConfig:
        values = {
            "api_key": self.gemini_api_key,
            "model": self.gemini_model,
            "route_override": self.route_override,
            "auto_screenshot_modify": self.auto_screenshot_modify,
            "screenshot_for_create_ask": self.screenshot_for_create_ask,
            "max_screenshot_mb": self.max_screenshot_mb,
            "context_timeout_s": self.context_timeout_s,
            "insert_timeout_s": self.insert_timeout_s,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return PipelineConfig(**values)


settings = Settings()
