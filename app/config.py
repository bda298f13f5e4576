"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./quiz_engine.db"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Application
    APP_NAME: str = "Quiz Assignment Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Rate Limiting
    RATE_LIMIT_WINDOW_SECONDS: int = 900  # 15 minutes
    RATE_LIMIT_MAX_REQUESTS: int = 100

    # Quiz Settings
    QUIZ_CACHE_TTL: int = 3600  # 1 hour
    TEMP_ID_PREFIX: str = "temp_"

    # Auto-assignment sweep
    AUTO_ASSIGN_ENABLED: bool = True
    AUTO_ASSIGN_INTERVAL_SECONDS: int = 300  # 5 minutes
    AUTO_ASSIGN_INITIAL_DELAY_SECONDS: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
