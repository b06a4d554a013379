"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Powerbase Booking API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")
    jwt_role_claim: str = Field("app_role", alias="JWT_ROLE_CLAIM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    facility_timezone: str = Field("Europe/London", alias="FACILITY_TIMEZONE")
    max_instance_capacity: int = Field(100, alias="MAX_INSTANCE_CAPACITY")
    max_extend_weeks: int = Field(52, alias="MAX_EXTEND_WEEKS")
    max_booking_weeks: int = Field(52, alias="MAX_BOOKING_WEEKS")

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:5174",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allowlist: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="CORS_ALLOWLIST"
    )

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
        populate_by_name=True,
    )

    @property
    def facility_tz(self) -> ZoneInfo:
        """Wall-clock zone used for schedules and cutoffs."""
        return ZoneInfo(self.facility_timezone)

    @field_validator("cors_allow_origins", "cors_allowlist", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("facility_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        ZoneInfo(value)
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
