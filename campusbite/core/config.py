"""Application configuration."""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # Storefront
    app_name: str = "CampusBite"
    currency_symbol: str = "₵"

    # External store calls
    store_timeout_seconds: float = 10.0

    # Cart persistence backend: "database" or "memory"
    cart_storage: str = "database"

    # Optional YAML catalog loaded at startup (users, vendors, menu items)
    catalog_file: Optional[str] = None

    # Sessions
    session_ttl_hours: int = 24

    # Order listing
    default_page_size: int = 20

    # Logging
    log_level: str = "INFO"
    log_sql: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
