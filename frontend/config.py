from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class FrontendSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Same-origin proxy + state store
    backend_url: str = "http://127.0.0.1:8000"

    # Generation server used when the user has not picked one
    ollama_default_server: str = "http://localhost:11434"

    # UI
    locale: str = "en"
    log_level: str = "INFO"

    # Only the connection is bounded; a running stream waits for the user
    connect_timeout: float = 10.0


@lru_cache
def get_frontend_settings() -> FrontendSettings:
    return FrontendSettings()
