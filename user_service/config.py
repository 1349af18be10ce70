from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # =========
    # App
    # =========
    APP_NAME: str = "Auth & User Service API"
    APP_VERSION: str = "1.0.0"
    SERVICE_NAME: str = "auth-user-service"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    PUBLIC_BASE_URL: str = Field(default="http://localhost:3001")
    CORS_ORIGIN: str = Field(default="*")
    PORT: int = Field(default=3001)

    # ======================
    # Database
    # ======================
    # A full URL wins over the discrete DB_* settings below.
    DATABASE_URL: Optional[str] = Field(default=None)
    DB_HOST: str = Field(default="localhost")
    DB_PORT: int = Field(default=3306)
    DB_USER: str = Field(default="root")
    DB_PASSWORD: str = Field(default="")
    DB_NAME: str = Field(default="user_service_db")
    DB_SOCKET_PATH: Optional[str] = Field(default=None)
    DB_SSL: bool = Field(default=False)
    DB_SSL_CA: Optional[str] = Field(default=None)
    DB_POOL_SIZE: int = Field(default=10)

    # =========
    # JWT
    # =========
    JWT_SECRET_KEY: str = Field(default="change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=1440)

    # =========
    # Google OAuth
    # =========
    SESSION_SECRET: Optional[str] = Field(default=None)
    GOOGLE_CLIENT_ID: str = Field(default="")
    GOOGLE_CLIENT_SECRET: str = Field(default="")
    GOOGLE_CALLBACK_URL: str = Field(default="/api/auth/google/callback")

    @property
    def session_secret(self) -> str:
        return self.SESSION_SECRET or self.JWT_SECRET_KEY

    @property
    def google_redirect_uri(self) -> str:
        """Absolute callback URL registered with Google."""
        if self.GOOGLE_CALLBACK_URL.startswith(("http://", "https://")):
            return self.GOOGLE_CALLBACK_URL
        return self.PUBLIC_BASE_URL.rstrip("/") + self.GOOGLE_CALLBACK_URL

    def secret_report(self) -> dict:
        return {
            "GOOGLE_CLIENT_ID": "SET" if self.GOOGLE_CLIENT_ID else "NOT SET",
            "GOOGLE_CLIENT_SECRET": "SET" if self.GOOGLE_CLIENT_SECRET else "NOT SET",
            "GOOGLE_CALLBACK_URL": self.GOOGLE_CALLBACK_URL,
            "JWT_SECRET_KEY": "SET" if self.JWT_SECRET_KEY else "NOT SET",
            "SESSION_SECRET": "SET" if self.SESSION_SECRET else "NOT SET",
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
