from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    local_database_url: str = "sqlite:///./posync_local.db"
    remote_database_url: str = "sqlite:///./posync_remote.db"
    sync_interval_minutes: int = 5
    sync_tables: Optional[List[str]] = None  # narrows the registry; None = every tracked table
    queue_retention_days: int = 7
    queue_cleanup_hour: int = 3

    class Config:
        env_prefix = "POSYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
