from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    openrouter_api_key: str = ""
    # Alternate keys tried in order when the primary hits a quota limit
    openrouter_fallback_api_keys: list[str] = []
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    telegram_bot_token: str = ""
    db_path: str = "ledgerbot.json"
    llm_model: str = "google/gemini-2.0-flash-exp"
    vision_model: str = "google/gemini-2.0-flash-exp"

    transcription_api_key: str = ""
    transcription_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"

    log_level: str = "INFO"

    nlu_timeout_seconds: float = 10.0
    nlu_cooldown_seconds: float = 60.0
    low_confidence_threshold: float = 0.5
    dedup_window_seconds: float = 5.0
    context_capacity: int = 5
    continuation_max_words: int = 6
    pending_context_ttl_seconds: float = 300.0
    # Cap on in-memory per-conversation state (histories, sessions, logins)
    max_conversations: int = 10_000


@lru_cache
def get_settings() -> Settings:
    return Settings()
