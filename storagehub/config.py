# storagehub/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="Database URL for the bucket registry",
    )

    # Config encryption
    STORAGE_CONFIG_KEYS: str = Field(
        default="",
        description="Comma-separated Fernet keys for bucket configs, newest first",
    )
    STORAGE_ALLOW_PLAINTEXT_CONFIG: bool = Field(
        default=False,
        description="Accept legacy bucket configs stored as plain JSON (logged as a warning)",
    )
    STORAGE_CONFIG_CACHE_TTL: int = Field(
        default=300,
        description="Seconds a decrypted, validated bucket config stays cached",
    )
    STORAGE_CONFIG_CACHE_SIZE: int = Field(
        default=256,
        description="Maximum number of cached bucket configs",
    )

    # Native blob store, credential mode
    NATIVE_ENDPOINT_TEMPLATE: str = Field(
        default="https://{account_id}.r2.cloudflarestorage.com",
        description="S3-compatible endpoint of the native store; {account_id} is substituted",
    )
    NATIVE_REGION: str = Field(
        default="auto",
        description="Region sentinel the native store expects for signed requests",
    )

    # S3-compatible client
    S3_CONNECT_TIMEOUT: float = Field(
        default=5,
        description="Connect timeout in seconds for S3-compatible requests",
    )
    S3_READ_TIMEOUT: float = Field(
        default=30,
        description="Read timeout in seconds for S3-compatible requests",
    )
    STORAGE_LIST_MAX_KEYS: int = Field(
        default=1000,
        description="Default and upper bound for objects returned per list page",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs; human-readable when False",
    )

    @property
    def storage_config_keys(self) -> list[str]:
        return [k.strip() for k in self.STORAGE_CONFIG_KEYS.split(",") if k.strip()]

    @field_validator("STORAGE_LIST_MAX_KEYS")
    @classmethod
    def bound_list_max_keys(cls, v: int) -> int:
        """S3 never returns more than 1000 keys per page."""
        return max(1, min(v, 1000))

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Railway provides postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
