# python
# app/core/config.py
"""Configuration settings for the Image Chat API.

Uses Pydantic BaseSettings for environment variable management.
"""
from enum import Enum
from pathlib import Path

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentEnum(str, Enum):
    development = "development"
    testing = "testing"
    staging = "staging"
    production = "production"


class LogLevelEnum(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormatEnum(str, Enum):
    simple = "simple"
    json = "json"


class Settings(BaseSettings):
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===== Application Settings =====
    app_name: str = Field(default="Image Chat API", description="Application name")
    environment: EnvironmentEnum = Field(
        default=EnvironmentEnum.development, description="Environment type"
    )
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    # ===== Storage Settings =====
    data_dir: Path = Field(default=Path("./data"), description="Root directory for chat data and images")
    database_url: str | None = Field(default=None, description="Database connection URL")
    test_database_url: str | None = Field(default=None, description="Test database URL")

    # ===== Image Generation (AI/ML API) =====
    aiml_api_key: str | None = Field(default=None, description="AI/ML API key")
    aiml_api_url: AnyHttpUrl = Field(
        default="https://api.aimlapi.com/v1/images/generations",
        description="Image generation endpoint",
    )
    default_model: str = Field(default="google/nano-banana-pro-edit", description="Default generation model")
    default_num_images: int = Field(default=1, description="Images requested per generation by default")
    generation_timeout: int = Field(default=120, description="Generation request timeout in seconds")
    generation_max_retries: int = Field(default=3, description="Attempts per generation request")

    # ===== Upload Limits =====
    max_upload_size: int = Field(default=10 * 1024 * 1024, description="Maximum upload size in bytes (10MB)")
    max_upload_files: int = Field(default=10, description="Maximum files per generate request")

    # ===== CORS Settings =====
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Allowed CORS origins (comma-separated)",
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        if isinstance(self.allowed_origins, str):
            return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return self.allowed_origins if isinstance(self.allowed_origins, list) else []

    # ===== Monitoring & Logging =====
    log_level: LogLevelEnum = Field(default=LogLevelEnum.INFO, description="Logging level")
    log_format: LogFormatEnum = Field(default=LogFormatEnum.simple, description="Log format")

    # ===== Server Settings =====
    host: str = Field(default="127.0.0.1", description="Host to bind the server")
    port: int = Field(default=3000, description="Port to bind the server")

    # ===== Computed Properties =====
    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentEnum.development

    @property
    def is_production(self) -> bool:
        return self.environment == EnvironmentEnum.production

    @property
    def is_testing(self) -> bool:
        return self.environment == EnvironmentEnum.testing

    @property
    def has_generation_enabled(self) -> bool:
        return bool(self.aiml_api_key)

    @property
    def images_dir(self) -> Path:
        return self.data_dir / "images"

    # ===== Validation Methods =====
    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        if v and isinstance(v, str):
            lv = v.lower()
            if lv in ["dev", "develop"]:
                return "development"
            if lv in ["prod"]:
                return "production"
            return lv
        return v

    @field_validator("default_num_images")
    @classmethod
    def validate_num_images(cls, v):
        if not 1 <= v <= 4:
            raise ValueError("Default number of images must be between 1 and 4")
        return v

    @field_validator("max_upload_size")
    @classmethod
    def validate_upload_size(cls, v):
        if v > 50 * 1024 * 1024:
            raise ValueError("Maximum upload size cannot exceed 50MB")
        return v

    @model_validator(mode="after")
    def set_computed_fields(self):
        if not self.database_url:
            self.database_url = f"sqlite+aiosqlite:///{(self.data_dir / 'chats.db').as_posix()}"
        return self


settings = Settings()


class ConfigValidator:
    @staticmethod
    def validate_required_settings():
        errors = []
        if not settings.database_url:
            errors.append("DATABASE_URL is required")
        if settings.is_production and not settings.aiml_api_key:
            errors.append("AIML_API_KEY is required in production")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @staticmethod
    def get_feature_status() -> dict:
        return {
            "generation_enabled": settings.has_generation_enabled,
            "default_model": settings.default_model,
            "environment": settings.environment,
        }


def get_config_summary() -> dict:
    return {
        "app_name": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
        "debug": settings.debug,
        "features": ConfigValidator.get_feature_status(),
        "database_configured": bool(settings.database_url),
        "data_dir": str(settings.data_dir),
    }


__all__ = [
    "settings",
    "Settings",
    "ConfigValidator",
    "get_config_summary",
    "EnvironmentEnum",
    "LogLevelEnum",
    "LogFormatEnum",
]
