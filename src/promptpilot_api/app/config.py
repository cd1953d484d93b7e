"""Service settings, read from `PROMPTPILOT_*` environment variables and `.env` files."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings; every field maps to `PROMPTPILOT_<FIELD>`."""

    # Service identity, reported by the MCP `initialize` handshake.
    app_name: str = "promptpilot-mcp"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Storage and request ownership.
    database_url: str = ""
    default_owner_id: str = Field(default="local-user", min_length=1)

    # Text generation. An empty key disables every model-backed feature.
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=8.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    llm_trace: bool = False
    openai_api_key: str = ""

    # Planning.
    rerank_enabled: bool = True
    rerank_preview_chars: int = Field(default=100, ge=10)
    score_title_action: int = Field(default=5, ge=0)
    score_content_action: int = Field(default=2, ge=0)
    score_title_keyword: int = Field(default=3, ge=0)
    score_content_keyword: int = Field(default=1, ge=0)

    # Prompt search.
    search_min_score: float = Field(default=0.4, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="PROMPTPILOT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    @field_validator("llm_provider", "log_level")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().lower()

    def resolved_database_url(self) -> str:
        # Hosting platforms usually inject the unprefixed name.
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
