"""Runtime configuration, read from the environment and ``.env``."""
from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Backend
    API_BASE_URL: str = "http://127.0.0.1:8000"
    API_TOKEN: SecretStr | None = None
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Progress tracking
    POLL_INTERVAL_SECONDS: float = 2.5

    # Local output
    DOWNLOAD_DIR: Path = Path("downloads")
    LOG_LEVEL: str = "INFO"

    def token(self) -> str | None:
        """Return the bearer token as plain text, or None when unset."""
        if self.API_TOKEN is None:
            return None
        return self.API_TOKEN.get_secret_value() or None


settings = Settings()
