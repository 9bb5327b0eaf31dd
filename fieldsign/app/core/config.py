"""
Centralized configuration for the field burn-in service.

Pydantic v2 settings management: values are parsed once from the
environment (prefix FIELDSIGN_) and are immutable for the lifetime of
the process.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Application settings parsed from the environment.
    """

    # ---------------------------------------------------------------------
    # Storage
    # ---------------------------------------------------------------------

    storage_dir: Annotated[
        Path,
        Field(
            default=Path("uploads"),
            description="Root of the flat artifact store",
        ),
    ]

    audit_log_path: Annotated[
        Optional[Path],
        Field(
            default=None,
            description=(
                "Append-only JSON Lines audit log. "
                "Defaults to <storage_dir>/audit.jsonl"
            ),
        ),
    ]

    signed_url_prefix: Annotated[
        str,
        Field(
            default="/uploads/signed",
            description="Public URL prefix for burned artifacts",
        ),
    ]

    # ---------------------------------------------------------------------
    # Burn behaviour
    # ---------------------------------------------------------------------

    clamp_page_index: Annotated[
        bool,
        Field(
            default=True,
            description=(
                "Clamp out-of-range page indices instead of rejecting "
                "the burn"
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Operational boundaries
    # ---------------------------------------------------------------------

    max_pdf_size_mb: Annotated[
        int,
        Field(
            default=25,
            ge=1,
            le=100,
            description="Upper bound on uploaded document size",
        ),
    ]

    cors_origins: Annotated[
        List[str],
        Field(
            default_factory=lambda: [
                "http://localhost:5173",
                "http://localhost:3000",
                "http://localhost:5174",
            ],
        ),
    ]

    log_level: LogLevel = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FIELDSIGN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def resolved_audit_log_path(self) -> Path:
        if self.audit_log_path is not None:
            return self.audit_log_path
        return self.storage_dir / "audit.jsonl"

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings singleton."""
    return Settings()
