"""
Application Configuration Settings
"""

from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Expense Approval Routing Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./approval_routing.db"
    DATABASE_ECHO: bool = False

    # JWT
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"  # Comma-separated string

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated string to list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIRECTORY: str = "logs"
    LOG_FILE: str = "logs/app.log"

    # Reports
    DEFAULT_CURRENCY: str = "INR"

    # Approval routing
    DEFAULT_HIERARCHY_LEVELS: int = 2  # Manager -> Business Head
    MAX_MAPPED_LEVELS: int = 5  # Legacy approver mapping covers L1-L5
    MIN_ADDITIONAL_APPROVAL_LEVEL: int = 2  # Budget approvals never precede L2
    DECISION_RETRY_ATTEMPTS: int = 1  # Re-read and retry once on version conflict

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()


# Ensure log directory exists
os.makedirs(settings.LOG_DIRECTORY, exist_ok=True)
