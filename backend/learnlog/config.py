from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".learnlog" / "data"
    sqlite_filename: str = "learnlog.db"
    timezone: str = "UTC"  # IANA name; day boundaries for streaks follow it
    default_owner_id: str = "local"
    due_queue_limit: int = 50
    review_max_retries: int = 3
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    model_config = {"env_prefix": "LEARNLOG_"}


settings = Settings()
