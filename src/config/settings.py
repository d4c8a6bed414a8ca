# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for build-time and runtime delivery settings.
Every field can be overridden by an environment variable of the same
name in upper case (e.g. TINYPNG_API_KEY, DEFAULT_QUALITY).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === External compression (optional) ===
    tinypng_api_key: str = ""
    tinypng_api_url: str = "https://api.tinify.com/shrink"
    tinypng_timeout_s: float = 30.0

    # === Build ===
    input_dir: Path = Path("public/assets")
    output_dir: Path = Path("public/optimized")
    cache_file: Path = Path(".image-optimization-cache.json")
    manifest_filename: str = "image-manifest.json"
    registry_file: Path | None = None
    default_quality: int = 85
    build_workers: int = 4
    source_extensions: str = "jpg,jpeg,png,gif"

    # === Placeholders ===
    placeholder_size: int = 32
    placeholder_components_x: int = 4
    placeholder_components_y: int = 3
    placeholder_fallback_color: str = "#f3f4f6"

    # === Runtime delivery ===
    lazy_root_margin_px: int = 50
    delivery_cache_path: Path = Path("~/.adaptimg/delivery-cache.db")
    delivery_cache_max_bytes: int = 100 * 1024 * 1024
    delivery_cache_max_age_s: int = 24 * 60 * 60
    delivery_fetch_timeout_s: float = 10.0
    prefetch_timeout_s: float = 5.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("default_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:  # noqa: N805
        if not 1 <= v <= 100:
            raise ValueError("default_quality must be within 1..100")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.build_workers < 1:
            errors.append("BUILD_WORKERS must be >= 1")

        if self.lazy_root_margin_px < 0:
            errors.append("LAZY_ROOT_MARGIN_PX must be >= 0")

        if self.placeholder_size < 1:
            errors.append("PLACEHOLDER_SIZE must be >= 1")

        if not (1 <= self.placeholder_components_x <= 9) or not (
            1 <= self.placeholder_components_y <= 9
        ):
            errors.append("PLACEHOLDER_COMPONENTS_X/Y must be within 1..9")

        if self.delivery_cache_max_bytes <= 0:
            errors.append("DELIVERY_CACHE_MAX_BYTES must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def compression_enabled(self) -> bool:
        """External compression runs only when a credential is present."""
        return bool(self.tinypng_api_key.strip())

    @property
    def source_extensions_list(self) -> list[str]:
        """Parse comma-separated source extensions (lower case, no dot)."""
        return [
            e.strip().lower().lstrip(".")
            for e in self.source_extensions.split(",")
            if e.strip()
        ]

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / self.manifest_filename


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or CLI flags).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
