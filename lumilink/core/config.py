from pydantic_settings import BaseSettings
from pydantic import field_validator, ValidationInfo, model_validator
from typing import Optional, Any
import logging

class Settings(BaseSettings):
    # App
    APP_NAME: str = "LumiLink Analytics"
    ENVIRONMENT: str = "development" # development, production, test
    SECRET_KEY: str = "super-secret-key-change-in-production"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str
    POSTGRES_URL: Optional[str] = None

    @model_validator(mode='before')
    @classmethod
    def check_database_url(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if not data.get("DATABASE_URL") and data.get("POSTGRES_URL"):
                data["DATABASE_URL"] = data.get("POSTGRES_URL")
        return data

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> str:
        if isinstance(v, str):
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql://", 1)
        return v

    # HTTP
    ALLOWED_ORIGINS: str = "*"
    TRACK_RATE_LIMIT: str = "120/minute"

    # Badges: user ids allowed to hand out manual ("special") badges
    ADMIN_USER_IDS: list[str] = []

    # Monitoring (Sentry)
    SENTRY_DSN: Optional[str] = None

    class Config:
        env_file = ".env"
        extra = "ignore" # Prevent crash on extra env vars

settings = Settings()

if settings.ENVIRONMENT == "production" and settings.SECRET_KEY == "super-secret-key-change-in-production":
    logging.getLogger(__name__).critical("SECRET_KEY is the development default. Tokens can be forged.")
