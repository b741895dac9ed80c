"""
Backend Configuration
Environment variables and service settings
"""
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "OpSafe"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "opsafe"
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    MONGO_CONNECT_TIMEOUT_MS: int = 10000

    # JWT (tokens are issued by the identity service)
    JWT_SECRET: str = "opsafe-dev-secret"
    JWT_ALGORITHM: str = "HS256"

    # Roles
    WRITE_ROLES: List[str] = ["admin", "manager"]
    CROSS_ORGANIZATION_ROLES: List[str] = ["superadmin"]

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"

    # Equipment state synchronization
    EQUIPMENT_WRITE_RETRIES: int = Field(5, ge=1)
    REJECT_CHECKOUT_IN_MAINTENANCE: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
