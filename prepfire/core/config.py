from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ADMIN_TOKEN: Optional[str] = None
    DATABASE_URL: str = "sqlite:///./prepfire.db"
    AUTO_CREATE_TABLES: bool = True

    FALLBACK_USER_EMAIL: Optional[str] = None

    MAX_CODE_LENGTH: int = 50_000
    SUBMISSION_COOLDOWN_SEC: int = 0
    RUN_COOLDOWN_SEC: int = 0
    DEFAULT_TIME_LIMIT_SEC: float = 2.0
    DEFAULT_MEMORY_LIMIT_MB: int = 128

    JUDGE_ENGINE: str = "local"
    JUDGE_WORKER_COUNT: int = 2
    JUDGE_DELAY_SEC: float = 0.0
    JUDGE_EXECUTION_TIMEOUT_SEC: float = 30.0
    JUDGE_VISIBILITY_TIMEOUT_SEC: float = 120.0
    JUDGE_POLL_INTERVAL_SEC: float = 2.0
    JUDGE_MAX_ATTEMPTS: int = 5
    SIMULATED_ACCEPT_PROBABILITY: float = 0.7

    SERVER_DATA_PATH: str = "server_data"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
