"""Application settings and environment configuration."""

from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "SchemaForge"
    debug: bool = False
    environment: str = "dev"  # 'dev' or 'prod'
    log_level: str = "INFO"

    # Database
    # Full URL wins; otherwise the URL is assembled from the discrete parts below.
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "schemaforge"
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_connect_timeout: int = 10
    # Upper bound for any single statement, enforced by PostgreSQL itself.
    db_statement_timeout_ms: Optional[int] = None

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_workers: int = 4
    api_prefix: str = "/api/v1"
    app_url: str = "http://localhost:8080"

    # Migration execution endpoints
    migration_rate_limit: str = "30/minute"
    rate_limit_enabled: bool = True

    @property
    def sqlalchemy_url(self) -> str:
        """Resolve the database URL, building it from parts when not given."""
        if self.database_url:
            return self.database_url
        return URL.create(
            "postgresql+psycopg2",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        ).render_as_string(hide_password=False)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "dev"


settings = Settings()
