"""
Configuration management for the Polaris server.
Supports environment variables and a .env file.

Runtime configuration that operators edit (model credentials, handlers,
personas, user policies) lives in tables; this module only wires the process.
"""
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "polaris.log"

    # Shared bearer token required on /query and /chat/events.
    # Unset means those endpoints refuse every caller.
    api_token: Optional[str] = Field(None, validation_alias="POLARIS_API_TOKEN")

    # Storage (tables + pending actions share one SQLite file)
    db_path: str = Field("polaris.db", validation_alias="POLARIS_DB_PATH")

    # Prediction endpoint (chat-completion style)
    prediction_url: str = Field(
        "https://api.openai.com/v1/chat/completions", validation_alias="POLARIS_PREDICTION_URL"
    )
    prediction_timeout_seconds: float = Field(30, validation_alias="POLARIS_PREDICTION_TIMEOUT")
    prediction_max_tokens: int = Field(1024, validation_alias="POLARIS_PREDICTION_MAX_TOKENS")
    prediction_temperature: float = Field(0.7, validation_alias="POLARIS_PREDICTION_TEMPERATURE")

    # Settings / Handlers table cache
    cache_ttl_seconds: int = Field(600, validation_alias="POLARIS_CACHE_TTL")

    # Calendar display + prompt timezone
    timezone: str = Field("UTC", validation_alias="POLARIS_TIMEZONE")

    # Approval links
    public_base_url: str = Field("http://localhost:8000", validation_alias="POLARIS_PUBLIC_BASE_URL")
    pending_action_ttl_seconds: int = Field(300, validation_alias="POLARIS_PENDING_TTL")
    pending_retention_hours: int = Field(168, validation_alias="POLARIS_PENDING_RETENTION_HOURS")

    # Identities granted ADMIN only while the UserAccess table is unreadable.
    # Empty by default: a broken policy table denies everyone.
    break_glass_admins: List[str] = Field(default_factory=list, validation_alias="POLARIS_BREAK_GLASS_ADMINS")

    # Google Workspace bindings
    google_access_token: Optional[str] = Field(None, validation_alias="GOOGLE_ACCESS_TOKEN")
    google_calendar_id: str = Field("primary", validation_alias="GOOGLE_CALENDAR_ID")

    app_version: str = Field("1.3.0", validation_alias="POLARIS_VERSION")


settings = Settings()
