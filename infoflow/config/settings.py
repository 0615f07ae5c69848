"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "infoflow_dev"

    # Repository backend: "mongo" or "dry_run" (in-memory, nothing persisted)
    repository_backend: str = "mongo"

    # Bearer token validation (identity itself is issued elsewhere)
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = ""

    # Workflow rules
    min_timeline_days: int = 3
    deadline_buffer_days: int = 3  # default deadline = timeline - buffer
    max_conflict_retries: int = 3

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_dry_run(self) -> bool:
        """Check if the in-memory dry-run backend is selected"""
        return self.repository_backend.lower() == "dry_run"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
