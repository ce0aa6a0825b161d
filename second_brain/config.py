"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    DEBUG: bool = FLASK_ENV == "development"
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")

    # Auth token settings
    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    # OpenAI settings
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # Chat relay settings
    AI_MAX_RETRIES: int = int(os.getenv("AI_MAX_RETRIES", "3"))
    AI_RETRY_BASE_DELAY: float = float(os.getenv("AI_RETRY_BASE_DELAY", "1.0"))
    CHAT_HISTORY_LIMIT: int = int(os.getenv("CHAT_HISTORY_LIMIT", "10"))

    # Notes
    DEFAULT_FOLDER_NAME: str = "Unfiled"
    DEFAULT_NOTE_TITLE: str = "Untitled"

    @classmethod
    def ai_enabled(cls) -> bool:
        return bool(cls.OPENAI_API_KEY)

    @classmethod
    def validate(cls) -> list[str]:
        """Return the configuration problems found (empty when everything is set)"""
        errors = []

        if not cls.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is not set")

        if cls.FLASK_ENV == "production":
            if not cls.DATABASE_URL:
                errors.append("DATABASE_URL is not set")
            if cls.JWT_SECRET == "dev-secret-change-me":
                errors.append("JWT_SECRET is not set")

        return errors


# Create config instance
config = Config()
