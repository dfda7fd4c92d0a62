"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the app can start with minimal configuration.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Central configuration for the Directory Service.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. The Supabase service key
    grants full access to the project and must never be committed.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")
    avatars_bucket: str = Field(default="avatars", description="Storage bucket for account avatars")

    # ── Accounts ─────────────────────────────────────────────────
    default_language: str = Field(default="fr", description="Language stored on newly created accounts")
    generated_password_bytes: int = Field(
        default=12, ge=8, le=64, description="Entropy of auto-generated account passwords"
    )

    # ── Admin access ─────────────────────────────────────────────
    require_admin_auth: bool = Field(default=True, description="Guard directory routes with an admin session")
    admin_roles: list[str] = Field(default_factory=lambda: ["admin", "superadmin"])
    session_cookie_name: str = Field(default="canstory_session", description="Cookie carrying the access token")

    # ── HTTP ─────────────────────────────────────────────────────
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    rate_limit_per_minute: int = Field(default=120, ge=1, le=10_000, description="Requests per client IP per minute")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
