"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Dispatch Route Planner API"
    api_prefix: str = "/api"
    log_level: str = "INFO"
    data_root: Path = Field(default=Path("data"), description="Root directory for file-backed state and exports.")
    state_backend: Literal["memory", "file", "supabase"] = Field(
        default="file",
        description="Where draft plans, approvals and tracking sessions are kept.",
    )

    optimizer_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the route optimization engine (e.g., http://localhost:5001).",
    )
    optimizer_timeout_seconds: float = Field(default=120.0, gt=0.0)
    predictor_timeout_seconds: float = Field(default=60.0, gt=0.0)
    optimizer_max_retries: int = Field(default=2, ge=0)
    optimizer_backoff_seconds: float = Field(default=1.0, ge=0.0)
    default_depot_latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    default_depot_longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    max_route_duration_hours: float = Field(
        default=2.0,
        gt=0.0,
        description="Routes estimated above this duration get a plan warning.",
    )

    export_backend: Literal["local", "supabase"] = Field(default="local")
    export_bucket: str = Field(default="route-exports", description="Supabase Storage bucket for approved plans.")
    export_public_base_url: str = Field(
        default="/api/exports",
        description="URL prefix used for artifacts written by the local export backend.",
    )

    tracking_inactivity_timeout_seconds: int = Field(
        default=900,
        ge=0,
        description="Active sessions without a point for this long are closed. 0 disables the check.",
    )

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
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

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
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

    @property
    def default_depot(self) -> tuple[float, float] | None:
        if self.default_depot_latitude is None or self.default_depot_longitude is None:
            return None
        return (self.default_depot_latitude, self.default_depot_longitude)


settings = Settings()
