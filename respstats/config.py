"""Configuration management using environment variables."""
import os
from typing import Optional


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables."""
    
    INGEST_SECRET: Optional[str] = os.getenv("INGEST_SECRET")
    
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    
    # Mirror per-site stats into the /metrics exposition
    PROMETHEUS_STATS: bool = _env_flag("PROMETHEUS_STATS", "true")
    
    APP_NAME: str = "Response Stats Observer"
    APP_VERSION: str = "1.0.0"
    
    def is_ready(self) -> bool:
        """Check if the application is ready to accept exchanges (INGEST_SECRET set)."""
        return self.INGEST_SECRET is not None and len(self.INGEST_SECRET) > 0


settings = Settings()
