from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Storage mode: client side only, no backend round trips
    local_storage: bool = False

    # Remote backend
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 10.0

    # Local record store, also used by the REST backend
    database_path: Path = Path("./data/annotations.db")

    # Load annotations of a newly persisted track without blocking
    fetch_asynchronously: bool = False

    # Server settings
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


settings = Settings()
