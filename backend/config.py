from pathlib import Path
from functools import lru_cache

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Generation server used when a request names none
    ollama_default_server: str = "http://localhost:11434"

    # Database
    database_url: str = "./data/ollama_chat.db"

    # Server
    backend_port: int = 8000
    log_level: str = "INFO"

    # Upstream connection; streamed reads are never timed out
    upstream_connect_timeout: float = 10.0

    # Deployment
    allowed_origins: str = ""

    # Loaded from YAML
    yaml_config: dict = {}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        yaml_path = Path(__file__).parent.parent / "config" / "settings.yaml"
        if yaml_path.exists():
            with open(yaml_path, "r", encoding="utf-8") as f:
                self.yaml_config = yaml.safe_load(f) or {}

    @property
    def default_params(self) -> dict:
        return self.yaml_config.get("generation", {}).get("defaults", {})

    @property
    def locale(self) -> str:
        return self.yaml_config.get("ui", {}).get("locale", "en")

    @property
    def allowed_upstream_schemes(self) -> list[str]:
        return self.yaml_config.get("proxy", {}).get("schemes", ["http", "https"])


@lru_cache
def get_settings() -> Settings:
    return Settings()
