from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "FinApp Backend"
    ENV: str = "dev"

    # SQLite file next to apps/backend so the path does not depend on the CWD
    _default_db_path = Path(__file__).resolve().parents[2] / "finapp.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    TIMEZONE: str = "America/Sao_Paulo"
    LOG_LEVEL: str = "INFO"

    # Upper bound on periods a single backfill request may walk through
    BACKFILL_MAX_PERIODS: int = 120

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="FINAPP_", case_sensitive=False)


settings = Settings()
