from __future__ import annotations

import json
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(v, default: List[str]) -> List[str]:
    if v is None:
        return list(default)
    if isinstance(v, str) and v.strip().startswith("["):
        v = json.loads(v)
    if isinstance(v, str):
        parts = [p.strip() for p in v.split(",") if p.strip()]
        return parts or list(default)
    if isinstance(v, (list, tuple)):
        return list(v) or list(default)
    return list(default)


class AppSettings(BaseSettings):
    """
    Application-level settings for the workflow tracker service.

    This is separate from tracker.db.config.Settings, which focuses on the database layer.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Workflow Tracker API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Production release and quality inspection tracking for fabrication work items: "
            "quantity ledger, step-wise inspections and the release approval workflow."
        )
    )
    APP_VERSION: str = Field(default="0.1.0")

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, run minimal database seeding after migrations.",
    )

    # Tenancy defaults (used by the seeding utility)
    DEFAULT_TENANT_SLUG: str = Field(default="acme")

    # Tokens are issued by the identity provider; this service only verifies them.
    JWT_SECRET_KEY: str = Field(default="change-me", description="HMAC secret for bearer tokens")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1)

    PRIVILEGED_ROLES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["admin", "quality:supervisor"],
        description=(
            "Roles allowed to override inspection headers, correct ordered quantities, "
            "reject releases and persist derived header totals."
        ),
    )
    DELIVERY_NOTIFICATIONS_ENABLED: bool = Field(
        default=True,
        description="Publish a delivery request when a release is approved.",
    )

    LOG_LEVEL: str = Field(default="INFO")

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    # Automatically load from .env at runtime. The orchestrator will provide these.
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        return _split_csv(v, ["*"])

    @field_validator("PRIVILEGED_ROLES", mode="before")
    @classmethod
    def _parse_privileged_roles(cls, v):
        return _split_csv(v, ["admin", "quality:supervisor"])


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    Note:
      A new instance is built on each call so tests can change the environment
      between requests.
    """
    return AppSettings()
