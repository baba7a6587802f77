"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_DEFAULT_ACCESS_SECRET = "xloop-default-secret-key-change-in-production"
_DEFAULT_REFRESH_SECRET = "xloop-refresh-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "XLoop Auth Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "xloop_auth"
    POSTGRES_USER: str = "xloop"
    POSTGRES_PASSWORD: str = "xloop"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # JWT
    JWT_SECRET: str = _DEFAULT_ACCESS_SECRET
    JWT_REFRESH_SECRET: str = _DEFAULT_REFRESH_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: str = "15m"
    JWT_REFRESH_EXPIRES_IN: str = "7d"
    JWT_ISSUER: str = "xloop-auth-service"
    JWT_AUDIENCE: str = "xloop-platform"

    # Sessions
    SESSION_IDLE_TIMEOUT_DAYS: int = 30
    SESSION_SWEEP_INTERVAL_SECONDS: float = 3600.0
    REVOKE_FAMILY_ON_REUSE: bool = False
    RUN_EMBEDDED_SWEEPER: bool = False

    # Account lifecycle
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_HOURS: int = 1
    MAX_FAILED_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_DURATION_MINUTES: int = 15
    DEFAULT_USER_ROLE: str = "viewer"

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_PER_HOUR: int = 1000
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50
    PROFILE_RATE_LIMIT_PER_MINUTE: int = 10
    PROFILE_RATE_LIMIT_PER_HOUR: int = 100
    RATE_LIMIT_MAX_KEYS: int = 10000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Bootstrap admin
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"
    SEED_RBAC_ON_STARTUP: bool = True

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated origins from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "auth.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate token configuration, and runtime security defaults in production.

        Raises:
            ConfigurationError: If TTLs are malformed or signing secrets are
                missing, shared, or insecure in production.
        """
        # Imported lazily: core.security reads settings at import time.
        from app.core.exceptions import ConfigurationError
        from app.core.security import parse_duration

        parse_duration(self.JWT_EXPIRES_IN)
        parse_duration(self.JWT_REFRESH_EXPIRES_IN)

        if not self.JWT_SECRET or not self.JWT_REFRESH_SECRET:
            raise ConfigurationError("JWT_SECRET and JWT_REFRESH_SECRET must both be set.")
        if self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ConfigurationError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")

        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            _DEFAULT_ACCESS_SECRET,
            _DEFAULT_REFRESH_SECRET,
            "change-me",
        }
        insecure_admin_passwords = {
            "",
            "admin123",
            "change_this_password_immediately",
        }

        for name in ("JWT_SECRET", "JWT_REFRESH_SECRET"):
            value = getattr(self, name)
            if value in insecure_secret_markers or len(value) < 32:
                raise ConfigurationError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )

        if self.ADMIN_PASSWORD in insecure_admin_passwords or len(self.ADMIN_PASSWORD) < 10:
            raise ConfigurationError(
                "Insecure ADMIN_PASSWORD for production. Set a strong admin password before startup."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
