"""
Centralized configuration for the SignForge compositing service.

Pydantic v2 settings management: environment-driven (``SIGNFORGE_``
prefix, optional ``.env``), validated once at startup, immutable after.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings parsed from the environment."""

    # ---------------------------------------------------------------------
    # Entitlement
    # ---------------------------------------------------------------------

    jwt_secret: Annotated[
        SecretStr,
        Field(
            default=SecretStr("dev_secret_change_me"),
            description="HS256 secret used to verify bearer tokens",
        ),
    ]

    bypass_paywall: Annotated[
        bool,
        Field(
            default=False,
            description="Serve pro-only routes to every caller (local testing)",
        ),
    ]

    # ---------------------------------------------------------------------
    # Operational Boundaries
    # ---------------------------------------------------------------------

    max_pdf_size_mb: Annotated[
        int,
        Field(
            default=25,
            ge=1,
            le=100,
            description="Upload size limit in megabytes",
        ),
    ]

    upload_dir: Annotated[
        Optional[Path],
        Field(
            default=None,
            description="Parent directory for per-request scratch directories",
        ),
    ]

    # ---------------------------------------------------------------------
    # Output
    # ---------------------------------------------------------------------

    watermark_text: str = "SIGNFORGE FREE"
    watermark_footer_text: str = "Free version - upgrade to remove watermark"

    embed_hash_metadata: Annotated[
        bool,
        Field(
            default=True,
            description="Bind the original document hash into XMP metadata",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="SIGNFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
