from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Z-API (WhatsApp gateway)
    zapi_base_url: str = "https://api.z-api.io"
    zapi_instance_id: str = ""
    zapi_token: str = ""
    zapi_client_token: str = ""
    zapi_timeout_seconds: float = 30.0

    openai_api_key: str = ""
    llm_model: str = "gpt-4o"
    transcription_model: str = "whisper-1"

    db_path: str = "ledger.json"

    group_cache_ttl_seconds: int = 300
    group_cache_file: str = "cache_groups.json"
    roster_fetch_delay_seconds: float = 0.2

    pending_expiry_minutes: int = 5
    reaper_interval_seconds: int = 30

    default_country_code: str = "55"
    admin_emails: list[str] = []
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
