"""Application configuration using pydantic-settings."""

from pathlib import Path
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via:
    1. Environment variables (e.g., DATA_DIR=/my/path)
    2. .env file in the project root

    The database path is derived from DATA_DIR by default but can be overridden.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API settings
    api_title: str = "Studio Platform API"
    api_version: str = "0.1.0"
    api_prefix: str = "/api"
    debug: bool = True  # Default to True for development

    # Authentication
    admin_api_key: str | None = None

    # Server settings (admin surface historically listens on 3002)
    host: str = "0.0.0.0"
    port: int = 3002

    # Storage paths
    data_dir: Path = Path("./data")
    database_path: Path | None = None

    # DuckDB settings
    duckdb_threads: int = 4
    duckdb_memory_limit: str = "2GB"

    # Activity feed
    activity_feed_limit: int = 10

    # Insert demo projects/tasks/builds into an empty database on startup
    seed_demo_data: bool = False

    @model_validator(mode="after")
    def set_default_paths(self) -> "Settings":
        """Set default database path based on data_dir if not explicitly provided."""
        if self.database_path is None:
            self.database_path = self.data_dir / "studio.duckdb"
        return self


# Global settings instance
settings = Settings()
