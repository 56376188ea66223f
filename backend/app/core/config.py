from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    DATABASE_URL: str = "sqlite:///./hiredesk.db"

    # JWT Authentication (access and refresh tokens are signed with different secrets)
    ACCESS_TOKEN_SECRET: str = "access-secret-key-change-in-production"
    REFRESH_TOKEN_SECRET: str = "refresh-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Single-use tokens
    VERIFICATION_TOKEN_EXPIRE_HOURS: int = 24
    RESET_TOKEN_EXPIRE_HOURS: int = 24

    # Password hashing
    BCRYPT_ROUNDS: int = 12

    # Feature flags
    REQUIRE_EMAIL_VERIFICATION: bool = True

    # Usage limits
    UPLOAD_LIMIT: int = 10
    SELECTED_CANDIDATE_LIMIT: int = 10

    # Refresh cookie
    REFRESH_COOKIE_NAME: str = "refreshToken"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth"

    # Email
    EMAIL_BACKEND: str = "console"  # 'console' | 'smtp'
    EMAIL_FROM: str = "no-reply@hiredesk.app"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    FRONTEND_URL: str = "http://localhost:3000"

    # Application
    APP_NAME: str = "HireDesk Auth"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    BACKEND_CORS_ORIGINS: str = (
        "http://localhost:3000,"
        "http://localhost:8000,"
        "https://hiredesk.vercel.app"
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
