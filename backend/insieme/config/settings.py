"""
Configuration settings for Insieme.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / '.env')


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "insieme")

    # Collections
    WORKSHEETS_COLLECTION: str = "worksheets"
    SUBMISSIONS_COLLECTION: str = "worksheet_submissions"
    PROBLEMS_COLLECTION: str = "problems"
    PRACTICE_SUBMISSIONS_COLLECTION: str = "submissions"  # single-problem practice answers

    # API Keys
    GEMINI_API_KEY: str = os.environ.get("GEMINI_API_KEY", "")

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"

    # AI Configuration
    LLM_MODEL: str = os.environ.get("LLM_MODEL", "gemini-2.5-flash")
    LLM_TIMEOUT: int = int(os.environ.get("LLM_TIMEOUT", 120))  # seconds
    LLM_TEMPERATURE: float = 0.0  # Deterministic grading
    GENERATION_TEMPERATURE: float = 0.7

    # Grading
    PASS_THRESHOLD: float = 0.7  # Fixed, intentionally not read from env
    GRADING_CONCURRENCY: int = int(os.environ.get("GRADING_CONCURRENCY", 1))
    GRADING_VERSION: str = "2.0"

    # Worksheets
    MAX_QUESTIONS: int = 20
    STALE_CREATING_MINUTES: int = 5
    ERROR_TITLE_SUFFIX: str = os.environ.get("ERROR_TITLE_SUFFIX", " (generation failed)")

    # File upload
    MAX_FILE_SIZE_MB: int = int(os.environ.get("MAX_FILE_SIZE_MB", 20))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def validate(self):
        """Validate critical settings."""
        if not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        if not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY environment variable not set")
        if self.GRADING_CONCURRENCY < 1:
            raise ValueError("GRADING_CONCURRENCY must be at least 1")
        return True


# Global settings instance
settings = Settings()
