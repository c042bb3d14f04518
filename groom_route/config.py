"""Configuration management for GroomRoute."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Route anchor
    base_location: str = Field(
        default="8401 Coral Way, Miami, FL 33155",
        description="Start and end point of every working day's route",
    )

    # Google Distance Matrix
    google_maps_api_key: str = Field(
        default="",
        description="API key for the Google Distance Matrix service",
    )
    distance_matrix_url: str = Field(
        default="https://maps.googleapis.com/maps/api/distancematrix/json",
        description="Distance Matrix endpoint",
    )
    distance_matrix_timeout: float = Field(
        default=5.0,
        description="Timeout in seconds for a single distance-matrix request",
    )

    # Fallback estimator bounds
    fallback_min_minutes: int = Field(default=8, ge=1)
    fallback_max_minutes: int = Field(default=35, ge=1)

    # Calendar grid
    day_start_minutes: int = Field(default=6 * 60, ge=0, le=24 * 60)
    day_end_minutes: int = Field(default=22 * 60, ge=0, le=24 * 60)
    grid_resolution_minutes: int = Field(default=15, ge=1)
    pixels_per_hour: float = Field(default=60.0, gt=0)
    min_block_height_px: float = Field(default=24.0, ge=0)
    min_appointment_minutes: int = Field(default=15, ge=1)

    # Route optimization
    optimization_threshold_minutes: int = Field(
        default=10,
        description="Minimum travel minutes saved before re-ordering is suggested",
    )
    average_speed_mph: float = Field(default=24.0, gt=0)
    fuel_mpg: float = Field(default=25.0, gt=0)
    gas_price_per_gallon: float = Field(default=3.50, ge=0)

    # Appointment store (REST)
    appointments_api_url: str = Field(
        default="",
        description="Base URL of the appointments REST API (e.g. https://host/api)",
    )
    appointments_api_token: str = Field(default="")
    appointments_api_timeout: float = Field(default=10.0)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Observability
    observability_enabled: bool = Field(default=True)
    observability_log_dir: Path = Field(default=Path("./data/logs"))

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def has_maps_key(self) -> bool:
        """Check if a Distance Matrix API key is configured."""
        return bool(self.google_maps_api_key)

    @property
    def has_appointments_api(self) -> bool:
        """Check if a remote appointment store is configured."""
        return bool(self.appointments_api_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
