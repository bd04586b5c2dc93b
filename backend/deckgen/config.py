from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_STORAGE_ROOT = PROJECT_ROOT / "storage"
DEFAULT_DB_PATH = DEFAULT_STORAGE_ROOT / "deckgen.db"


class Settings(BaseSettings):
    app_name: str = "Deck Generator API"
    api_prefix: str = "/api"

    storage_root: Path = DEFAULT_STORAGE_ROOT
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH.as_posix()}"
    redis_url: str = "redis://localhost:6379/0"
    frontend_origin: str = "http://localhost:3000"

    crm_base_url: str = "http://localhost:3000"
    crm_api_token: str | None = None
    crm_timeout_seconds: int = 15

    default_content_provider: str = "mock"
    openai_api_key: str | None = None
    openai_model: str = "gpt-5-mini"
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_tokens: int = 2000

    google_ai_api_key: str | None = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_image_model: str = "gemini-3-pro-image-preview"
    image_request_timeout_seconds: int = 60
    image_max_retries: int = 3
    image_retry_base_delay_seconds: float = 1.0
    retry_on_not_found: bool = True

    batch_item_delay_seconds: float = 0.5
    batch_min_items: int = 10
    scheduled_batch_limit: int = 50
    cron_secret: str | None = None

    deck_format_version: str = "1.0.0"

    log_level: str = "INFO"
    suppress_job_poll_access_logs: bool = True
    suppress_httpx_info_logs: bool = True
    verbose_job_trace: bool = True
    log_preview_chars: int = 180
    persist_job_events: bool = True
    job_events_page_size: int = 400

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()

for folder in [
    settings.storage_root,
    settings.storage_root / "decks",
    settings.storage_root / "scheduled",
]:
    folder.mkdir(parents=True, exist_ok=True)
