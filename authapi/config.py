"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. The .env file is gitignored; .env.example provides a safe template.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

The Settings object is built exactly once, in the app factory, and handed to
the components that need it (token issuer, session middleware, database
engine). Nothing below the factory reads the environment.

Usage:
    from authapi.config import Settings
    settings = Settings()
    app = create_app(settings)
"""

import enum
from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthStrategy(str, enum.Enum):
    """How a request proves who it is. Chosen once per deployment."""
    TOKEN = "token"       # Signed JWT in Authorization header or "token" cookie
    SESSION = "session"   # Server-signed session cookie holding the account id
    BASIC = "basic"       # HTTP Basic: email + password on every request


class Settings(BaseSettings):
    """
    Central configuration for the Auth API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - SESSION_SECRET: Used to sign the session cookie
      - DATABASE_URL: Async SQLAlchemy connection string
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Auth API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # e.g. "sqlite+aiosqlite:///./data/auth.db" or "postgresql+asyncpg://..."
    DATABASE_URL: str

    # --- Authentication ---
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30
    AUTH_STRATEGY: AuthStrategy = AuthStrategy.TOKEN

    # --- Sessions ---
    SESSION_SECRET: str
    # Stamp the session on login even when the strategy is not SESSION
    USE_SESSION: bool = False
    SESSION_MAX_AGE_SECONDS: int = 86400

    # --- Password reset ---
    RESET_TOKEN_EXPIRE_MINUTES: int = 10
    # Development aid: return the cleartext reset token in the API response
    # instead of relying on out-of-band delivery. Never enable in production.
    EXPOSE_RESET_TOKEN: bool = False

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(days=self.ACCESS_TOKEN_EXPIRE_DAYS)

    @property
    def reset_token_window(self) -> timedelta:
        return timedelta(minutes=self.RESET_TOKEN_EXPIRE_MINUTES)

    @property
    def sessions_enabled(self) -> bool:
        return self.USE_SESSION or self.AUTH_STRATEGY == AuthStrategy.SESSION
