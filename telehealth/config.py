import os
from pydantic_settings import BaseSettings
from typing import List

from dotenv import load_dotenv
load_dotenv()


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Storage: "firestore" or "memory"
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "firestore")

    # Firebase
    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "")
    FIREBASE_DATABASE_ID: str = os.getenv("FIREBASE_DATABASE_ID", "(default)")
    GOOGLE_APPLICATION_CREDENTIALS: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")

    # Auth: "firebase" verifies ID tokens / session cookies, "dev" trusts the user id
    AUTH_MODE: str = os.getenv("AUTH_MODE", "firebase")
    SESSION_COOKIE_NAME: str = "telehealth_session"
    SESSION_MAX_AGE: int = 86400 * 5  # 5 days, Firebase caps session cookies at 14

    # LLM
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "google_genai:gemini-2.5-flash")
    CONVERSATION_HISTORY_LIMIT: int = 20

    # Redis (rate limiting and conversation checkpoints)
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # External doctor directory used for the "internet" search
    DOCTOR_DIRECTORY_URL: str = os.getenv("DOCTOR_DIRECTORY_URL", "")
    DOCTOR_DIRECTORY_TIMEOUT: float = 10.0

    EMERGENCY_NUMBER: str = os.getenv("EMERGENCY_NUMBER", "108")

    # Rate limits (requests, window seconds)
    CHAT_RATE_LIMIT: int = 30
    CHAT_RATE_WINDOW: int = 60
    SYMPTOM_RATE_LIMIT: int = 15
    SYMPTOM_RATE_WINDOW: int = 300

    # CORS
    CORS_ORIGINS: List[str] = ["*"]  # In production, specify exact origins

    @property
    def IS_PRODUCTION(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Singleton instance
settings = Settings()
