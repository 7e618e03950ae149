"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ATLAS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Customer Atlas API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for static data and outputs.")
    customer_file: Path = Field(
        default=Path("data/customers.csv"),
        description="Customer dataset (CSV or XLSX) used when the database is not configured.",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    customers_table: str = "customers"
    products_table: str = "products"

    # Geocoding
    geocoder_base_url: str = Field(
        default="https://api.zippopotam.us",
        description="Postal-code geocoder (Zippopotam.us compatible).",
    )
    nominatim_base_url: Optional[str] = Field(
        default="https://nominatim.openstreetmap.org",
        description="Fallback geocoder; set empty to disable.",
    )
    geocoder_country: str = "us"
    geocoder_user_agent: str = "CustomerAtlasCRM/1.0"
    geocoder_timeout_seconds: float = Field(default=10.0, gt=0.0)
    geocoder_max_retries: int = Field(default=2, ge=0)
    geocoder_backoff_seconds: float = Field(default=0.5, ge=0.0)
    geocode_debounce_seconds: float = Field(default=0.3, ge=0.0)

    # Map behaviour
    default_radius_miles: float = Field(default=25.0, gt=0.0)
    cluster_radius_px: int = Field(default=25, ge=1)
    cluster_max_zoom: int = Field(default=16, ge=0, le=24)
    reserved_layers: tuple[str, ...] = Field(
        default=("SATE", "AudioSight"),
        description="Product types that get their own clustered layer; everything else goes to 'other'.",
    )
    map_ready_max_attempts: int = Field(default=10, ge=1)
    map_ready_interval_seconds: float = Field(default=0.1, ge=0.0)
    colocated_epsilon_degrees: float = Field(default=0.0001, gt=0.0)
    colocated_threshold: int = Field(default=2, ge=1)
    cluster_timeout_seconds: float = Field(default=5.0, gt=0.0)
    fly_to_duration_ms: int = Field(default=1500, ge=0)
    default_center: tuple[float, float] = (-98.5, 39.8)
    default_zoom: float = 3.0

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", "customer_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "reserved_layers", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("nominatim_base_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value


settings = Settings()
