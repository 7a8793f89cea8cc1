"""
Application settings - auth, CORS and workflow options
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application configuration - reads from environment variables or .env file."""

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # HTTP
    cors_origins: str = "*"
    business_unit_cookie: str = "active-business-unit"
    business_unit_cookie_max_age: int = 60 * 60 * 24 * 30  # 30 days
    cookie_secure: bool = False

    # Workflow
    auto_post_on_final_approval: bool = True
    doc_number_width: int = 5
    max_list_limit: int = 200
    min_password_length: int = 6

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


app_settings = AppSettings()
