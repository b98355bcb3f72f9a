"""SIEMSYNC — Central Configuration via Pydantic Settings."""

import os
from pydantic import BaseModel
from pydantic_settings import BaseSettings


class MimecastCredentials(BaseModel):
    """Signing credentials for the Mimecast API.

    Passed explicitly to the signer and client so nothing reads the
    environment behind the caller's back.
    """

    secret_key: str = ""
    access_key: str = ""
    application_key: str = ""
    application_id: str = ""


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Mimecast API ──
    mimecast_base_url: str = "https://eu-api.mimecast.com"
    mimecast_uri: str = "/api/audit/get-siem-logs"
    mimecast_secret_key: str = ""
    mimecast_access_key: str = ""
    mimecast_application_key: str = ""
    mimecast_application_id: str = ""

    # ── Geolocation ──
    geo_database_path: str = os.path.join("output", "IP2LOCATION-LITE-DB5.BIN")

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_interval_minutes: int = 15

    # ── Sync ──
    sync_request_timeout_seconds: float = 10 * 60  # large pages are slow to assemble
    sync_max_pages: int = 500

    @property
    def mimecast_credentials(self) -> MimecastCredentials:
        return MimecastCredentials(
            secret_key=self.mimecast_secret_key,
            access_key=self.mimecast_access_key,
            application_key=self.mimecast_application_key,
            application_id=self.mimecast_application_id,
        )

    @property
    def effective_database_url(self) -> str:
        """Return the configured database URL, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        return "sqlite:///./siemsync.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
