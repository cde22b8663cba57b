"""Configuration and environment settings for Receipt Insights."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for Receipt Insights."""

    # Receipt parsing
    groq_api_key: str | None = None
    receipt_agent: str = "groq"
    llm_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.2
    llm_max_completion_tokens: int = 1024
    llm_top_p: float = 0.95

    # Persistence
    database_url: str = "sqlite:///receipts.db"

    # Object storage
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_bucket: str = "receipts"
    s3_url_expiry: int = 3600
    jpeg_quality: int = 90

    # OCR
    ocr_endpoint_url: str = "https://example.com/ocr"
    ocr_timeout: float = 30.0

    # Analysis job polling
    analysis_max_attempts: int = 5
    analysis_poll_interval: float = 1.0
    analysis_submission_delay: float = 1.0
    analysis_time_unit: float = 1.0
    analysis_complete_from_attempt: int = 1
    analysis_backend_url: str | None = None
    analysis_backend_timeout: float = 10.0

    log_dir: str = "logs"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
