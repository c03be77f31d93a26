import os
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import SecretStr

class Settings(BaseSettings):
    BOT_TOKEN: SecretStr
    OPENAI_API_KEY: SecretStr

    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_INTENT_MODEL: str = "gpt-4o-mini"

    # Paths
    DB_PATH: str = "sqlite+aiosqlite:///nightlock.db"

    DEFAULT_TIMEZONE: str = "America/Los_Angeles"
    SESSION_TTL_MINUTES: int = 720

    # Empty WEBHOOK_URL means long polling
    WEBHOOK_URL: str = ""
    WEBHOOK_PATH: str = "/webhook"
    PORT: int = 8080

    LOG_LEVEL: str = "INFO"

    # Robust absolute path for .env to detect it irrespective of CWD
    model_config = {
        "env_file": os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

@lru_cache
def get_settings() -> Settings:
    return Settings()
