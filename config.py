"""
Runtime configuration for the Marketplace API.

Settings are read from environment variables (or a local .env file).
JWT_SECRET is mandatory: the app refuses to start without it.
"""
import logging
import sys
from typing import List

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    pass


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    jwt_secret: str = Field(..., description="Token signing key")
    jwt_algorithm: str = Field(default="HS256")
    token_ttl_days: int = Field(default=7, description="Bearer token lifetime")

    database_url: str = Field(default="", description="MongoDB connection URL")
    database_name: str = Field(default="", description="MongoDB database name")

    upload_dir: str = Field(default="uploads")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024)

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    cors_origins: str = Field(default="*", description="Comma separated origins")
    port: int = Field(default=8000)

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("JWT_SECRET is not set; refusing to start without a signing key")
        return v

    @field_validator("token_ttl_days")
    @classmethod
    def validate_token_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("TOKEN_TTL_DAYS must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origin_list(self) -> List[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["*"]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url and self.database_name)


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper()}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(h, "_marketplace", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._marketplace = True
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
