"""
PostgreSQL Database Configuration
Reads DATABASE_URL first, then falls back to the individual POSTGRES_* variables
"""
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class PostgresSettings(BaseSettings):
    """PostgreSQL configuration - reads from environment variables or .env file."""

    # Direct DATABASE_URL support (for deployment)
    database_url_direct: str = ""

    # Database Configuration
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "mrs_db"

    # SSL/TLS Configuration
    postgres_sslmode: str = "disable"

    # Connection Pool Configuration
    pool_size: int = 10
    max_overflow: int = 5
    pool_pre_ping: bool = True
    pool_recycle: int = 1800

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def database_url(self) -> str:
        """Construct the async database URL."""

        # Check for direct DATABASE_URL (for deployment)
        direct_url = os.environ.get("DATABASE_URL", self.database_url_direct)
        if direct_url:
            if direct_url.startswith("postgres://"):
                direct_url = direct_url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif direct_url.startswith("postgresql://") and "+asyncpg" not in direct_url:
                direct_url = direct_url.replace("postgresql://", "postgresql+asyncpg://", 1)
            direct_url = direct_url.replace("sslmode=require", "ssl=require")
            direct_url = direct_url.replace("sslmode=disable", "ssl=disable")
            return direct_url

        # Construct from environment variables
        ssl_param = f"?ssl={self.postgres_sslmode}" if self.postgres_sslmode != "disable" else ""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            f"{ssl_param}"
        )


postgres_settings = PostgresSettings()
