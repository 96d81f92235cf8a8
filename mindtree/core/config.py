from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── AI Providers ──────────────────────────────────────────────────────────
    AI_PROVIDER: str = "hybrid"

    @field_validator("AI_PROVIDER")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        allowed = {"hybrid", "groq", "gemini"}
        if v.lower() not in allowed:
            raise ValueError(f"AI_PROVIDER must be one of {allowed}, got '{v}'")
        return v.lower()

    # Groq (Llama 3 - High Speed)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # Google (Gemini - Complex Reasoning)
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"

    # ── Generation ────────────────────────────────────────────────────────────
    MAX_CONTENT_LENGTH: int = 15000  # chars sent to the model
    GENERATION_TIMEOUT_SECONDS: float = 120
    MAX_RETRIES: int = 2

    # ── Limits ────────────────────────────────────────────────────────────────
    MAX_FILE_SIZE_MB: int = 20
    MAX_PDF_PAGES: int = 200

    # ── Layout ────────────────────────────────────────────────────────────────
    LAYOUT_NODESEP: float = 50
    LAYOUT_RANKSEP: float = 120
    LAYOUT_DIRECTION: str = "LR"

    @field_validator("LAYOUT_DIRECTION")
    @classmethod
    def validate_layout_direction(cls, v: str) -> str:
        allowed = {"LR", "TB"}
        if v.upper() not in allowed:
            raise ValueError(f"LAYOUT_DIRECTION must be one of {allowed}, got '{v}'")
        return v.upper()

    # ── Sessions ──────────────────────────────────────────────────────────────
    AUTOSAVE_DEBOUNCE_SECONDS: float = 2.0
    SESSION_TTL_SECONDS: float = 3600.0

    # ── Core ──────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:5174",
        "http://localhost:3000",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
