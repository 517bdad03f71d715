# /stepflow/config/settings.py

import sys
from typing import List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulingConfig(BaseModel):
    """
    Connection details for the scheduling backend.
    Handed to each turn so a fresh client can be built from it.
    """
    user_id: str | None
    api_key: str | None
    base_url: str
    timeout: float

    model_config = ConfigDict(frozen=True)


class Settings(BaseSettings):
    # Conversation storage (in-memory store is used when unset)
    redis_url: str | None = None
    state_key_prefix: str = "stepflow"
    state_ttl_seconds: int | None = None

    # Acuity scheduling backend
    acuity_user_id: str | None = None
    acuity_api_key: str | None = None
    acuity_base_url: str = "https://acuityscheduling.com/api/v1"
    acuity_timeout: float = 15.0

    # Result delivery
    delivery_base_url: str | None = None
    delivery_timeout: float = 10.0

    # Flow engine
    prompt_timeout: float = 30.0
    fallback_response_enabled: bool = True

    # Logging
    log_level: str = "INFO"

    # Security
    webhook_secret: str | None = None
    api_key: str | None = None

    # Deployment
    workers: int = 2
    environment: str = "production"
    cors_allowed_origins: List[str] = Field(default_factory=list)

    # App Metadata & Limits
    api_version: str = "v1"
    rate_limit_per_minute: int = 100

    # ---------------- Validators ---------------- #

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_allowed_origins(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("prompt_timeout")
    @classmethod
    def prompt_timeout_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("PROMPT_TIMEOUT must be greater than zero")
        return v

    @property
    def scheduling(self) -> SchedulingConfig:
        return SchedulingConfig(
            user_id=self.acuity_user_id,
            api_key=self.acuity_api_key,
            base_url=self.acuity_base_url.rstrip("/"),
            timeout=self.acuity_timeout,
        )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def validate_environment(settings_obj: Settings):
    try:
        if settings_obj.environment == "production":
            for var in ["acuity_user_id", "acuity_api_key"]:
                if not getattr(settings_obj, var):
                    raise ValueError(f"{var.upper()} is required in production")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
