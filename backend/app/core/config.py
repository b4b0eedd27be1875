from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Marketing Targets API"
    api_prefix: str = "/api/v1"
    debug: bool = False
    auto_create_schema: bool = True
    log_level: str = "INFO"

    database_url: str = f"sqlite+pysqlite:///{Path(__file__).resolve().parents[2] / 'targets.db'}"
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    rate_limit_requests: int = 120
    rate_limit_window_seconds: int = 60
    default_account_id: str = "default"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
