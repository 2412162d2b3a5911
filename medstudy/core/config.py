import json

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve project root regardless of current working directory
BASE_DIR = Path(__file__).resolve().parents[2]
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "MedStudy"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    # One origin or several, comma separated (or a JSON list)
    # Example: "http://localhost:5173,https://example.com"
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'medstudy.db'}"

    # ===== Uploads =====
    UPLOAD_DIR: str = str(BASE_DIR / "uploads")
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # ===== Async Queue (RQ/Redis) =====
    # Disabled: ingestion jobs run in-process after the upload response is sent.
    ASYNC_QUEUE_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    RQ_DEFAULT_TIMEOUT_SEC: int = 1800
    INGEST_QUEUE_NAME: str = "ingest"

    # ===== LLM settings =====
    # OPENAI_API_KEY for OpenAI Cloud. For a local OpenAI-compatible server
    # (Ollama/LM Studio) the key can stay empty and only OPENAI_BASE_URL is set.
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"

    # The only bound on a slow model call. Keep retries low to avoid long hangs.
    OPENAI_HTTP_TIMEOUT_SEC: int = 120
    OPENAI_MAX_RETRIES: int = 1

    # Extracted text is cut to this many characters before topic extraction.
    AI_TEXT_CHAR_BUDGET: int = 15000
    # Content length of the single topic returned when extraction falls back.
    AI_FALLBACK_CONTENT_CHARS: int = 500
    AI_FALLBACK_SUBJECT: str = "General Medicine"

    # Number of topics injected as Q&A context.
    QA_CONTEXT_TOP_K: int = 5

    # Seed the default specialties on startup.
    SEED_SUBJECTS: bool = True

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return []

        if isinstance(v, list):
            return v

        # String: JSON list first, then comma separated
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                try:
                    return json.loads(s)
                except ValueError:
                    pass
            return [item.strip() for item in s.split(",") if item.strip()]

        return v


settings = Settings()
