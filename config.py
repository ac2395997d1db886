"""
Application settings loaded from the environment (and `.env` when present).
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    DATABASE_NAME: str = Field("novel_platform", description="Database holding all collections")
    DATABASE_CONNECT_TIMEOUT_MS: int = Field(5000, description="Give up initial connection after this long")

    # Sessions
    JWT_SECRET_KEY: str = Field("change-me", description="HS256 signing key for access tokens")
    JWT_EXPIRE_MINUTES: int = Field(60 * 24, description="Access token lifetime")

    # Image host
    CLOUDINARY_CLOUD_NAME: str = Field("", description="Cloudinary cloud name")
    CLOUDINARY_API_KEY: str = Field("", description="Cloudinary API key")
    CLOUDINARY_API_SECRET: str = Field("", description="Cloudinary API secret")
    UPLOAD_TIMEOUT_SECONDS: float = Field(30.0, description="HTTP timeout for image uploads")

    # Upload limits
    MAX_IMAGE_SIZE_MB: int = Field(5, description="Ceiling for cover and chapter images")
    MAX_PAYMENT_QR_SIZE_MB: int = Field(2, description="Ceiling for payment QR images")

    # Content rules
    REQUIRE_GENRES: bool = Field(False, description="Reject novels created without genres")

    LOG_LEVEL: str = Field("INFO", description="loguru level for the stderr sink")
    PORT: int = Field(8000, description="Port used when run directly")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
