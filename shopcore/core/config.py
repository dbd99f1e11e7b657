# shopcore/core/config.py
import tempfile
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string, or sqlite:// for local use)
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)

    Optional:
      - SUPABASE_SERVICE_ROLE_KEY (needed by the image store)
      - SEARCH_URL (search engine base URL; indexing is skipped when unset)
      - EXPORT_DIR (where export files are written before mailing)
      - SMTP_* (mail server used to deliver exports)
    """

    PROJECT_NAME: str = "shopcore"

    DATABASE_URL: str

    # Supabase (blob storage)
    SUPABASE_URL: str
    SUPABASE_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    STORAGE_BUCKET: str = "assets"

    # Search indexing
    SEARCH_URL: str | None = None
    SEARCH_INDEX: str = "products"
    SEARCH_TIMEOUT_SECONDS: float = 5.0
    TENANT: str = "default"

    # Admin exports
    EXPORT_DIR: str = tempfile.gettempdir()
    EXPORT_BATCH_SIZE: int = 500

    # Outgoing mail (export delivery)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Shop Reports"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: float = 30.0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / call.
    """
    return Settings()
