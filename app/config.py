"""
Configuration settings for the document answering service.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Set


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI-compatible LLM Configuration
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_DETECT_MODEL: str = "gpt-4"
    OPENAI_ANSWER_MODEL: str = "gpt-3.5-turbo"
    OPENAI_TIMEOUT: int = 60  # seconds per completion request
    DETECT_MAX_TOKENS: int = 1000
    ANSWER_MAX_TOKENS: int = 150
    MAX_DETECTION_CHARS: int = 12000  # size of each line-aligned detector window

    # "llm" asks the model for questions, "heuristic" takes lines ending in "?"
    QUESTION_DETECTOR: str = "llm"

    # Google service account
    CLIENT_EMAIL: str = ""
    PRIVATE_KEY: str = ""
    TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    GOOGLE_API_TIMEOUT: int = 30

    # Comma-separated owner emails allowed to have documents processed
    APPROVED_EMAILS: str = ""

    # Question location
    FUZZY_MATCH_THRESHOLD: float = 0.8
    ANSWER_MARKER: str = "Answer:"

    # Typing simulation
    TYPING_CHUNK_WORDS: int = 5
    TYPING_WPM_MIN: float = 100.0
    TYPING_WPM_MAX: float = 120.0
    QUESTION_PAUSE_SECONDS: float = 2.0

    # Drive polling
    POLL_ENABLED: bool = False
    POLL_INTERVAL_SECONDS: int = 60
    POLL_PAGE_SIZE: int = 25
    SEEN_DOCUMENTS_MAX: int = 1000

    # Public base URL used when registering Drive push notifications
    WEBHOOK_BASE_URL: str = ""

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    def get_approved_emails(self) -> Set[str]:
        """Parse APPROVED_EMAILS into a lowercased set."""
        return {
            email.strip().lower()
            for email in self.APPROVED_EMAILS.split(",")
            if email.strip()
        }

    def get_private_key(self) -> str:
        """Private key with escaped newlines (as stored in .env) restored."""
        return self.PRIVATE_KEY.replace("\\n", "\n")

    def has_google_credentials(self) -> bool:
        return bool(self.CLIENT_EMAIL and self.PRIVATE_KEY)


# Global settings instance
settings = Settings()
