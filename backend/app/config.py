from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """NanoCanvas backend settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "NanoCanvas"
    DEBUG: bool = False
    USE_MOCK_API: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "nanocanvas"
    DB_URL: str = ""  # full async URL, overrides the DB_* parts when set
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    @property
    def DATABASE_URL(self) -> str:
        """Async connection string; asyncmy driver unless DB_URL overrides it."""
        if self.DB_URL:
            return self.DB_URL
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Vertex AI ---
    GOOGLE_CLOUD_PROJECT: str = ""
    GOOGLE_CLOUD_LOCATION: str = "us-east5"
    VIDEO_CLOUD_LOCATION: str = "us-central1"
    GOOGLE_SERVICE_ACCOUNT_KEY: str = ""  # service account JSON document
    GOOGLE_ACCESS_TOKEN: str = ""  # static bearer token, used when no key is set
    DEFAULT_VIDEO_MODEL: str = "veo-2.0-generate-001"
    PROVIDER_TIMEOUT: float = 300.0
    PROVIDER_RETRY_WAITS: str = "2,5"  # seconds between 429 retries, in order

    # --- Job pipeline ---
    FETCH_TIMEOUT: float = 60.0
    CLAIM_LEASE_SECONDS: float = 900.0
    POLL_WORK_TIMEOUT: float = 0.0  # 0 = 90% of CLAIM_LEASE_SECONDS; must stay below it
    MOCK_VIDEO_URL: str = (
        "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4"
    )

    # --- Storage ---
    STORAGE_BACKEND: str = "r2"  # "r2" or "local"
    CLOUDFLARE_R2_ACCOUNT_ID: str = ""
    CLOUDFLARE_R2_ACCESS_KEY_ID: str = ""
    CLOUDFLARE_R2_SECRET_ACCESS_KEY: str = ""
    CLOUDFLARE_R2_BUCKET_NAME: str = ""
    CLOUDFLARE_R2_PUBLIC_URL: str = ""

    # --- Media Volume (local storage backend) ---
    MEDIA_VOLUME: str = "media_volume"
    MEDIA_BASE_URL: str = "http://localhost:8000/media"

    # --- Convenience parsers ---
    @property
    def retry_waits(self) -> tuple[float, ...]:
        return tuple(
            float(w.strip()) for w in self.PROVIDER_RETRY_WAITS.split(",") if w.strip()
        )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def poll_work_timeout(self) -> float | None:
        return self.POLL_WORK_TIMEOUT if self.POLL_WORK_TIMEOUT > 0 else None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
