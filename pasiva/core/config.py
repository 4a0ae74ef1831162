# pasiva/core/config.py
import pathlib
import logging
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

logger = logging.getLogger("pasiva.core.config")  # Logger for this module

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    PROJECT_NAME: str = "Wheel of Pasiva Backend"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'pasiva.db'}"

    # "memory" keeps rooms in the process, "sql" stores them in DATABASE_URL
    ROOM_STORE_BACKEND: Literal["memory", "sql"] = "memory"
    # SQL documents have no push channel, subscribers poll for new versions
    STORE_POLL_INTERVAL_SECONDS: float = 0.5

    ROOM_ID_MAX_ATTEMPTS: int = 5
    # Observers must see isSpinning=true for a while before the outcome lands
    SPIN_DELAY_SECONDS: float = 2.0
    # Off by default: plain last-writer-wins document writes
    OPTIMISTIC_CONCURRENCY: bool = False

    LOG_CONFIG_FILE: pathlib.Path = BASE_DIR / "pasiva" / "logging_config.json"
    LOG_DIR: pathlib.Path = BASE_DIR / "logs"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache()
def get_settings():
    settings_instance = Settings()
    logger.info(f"Room store backend set to: {settings_instance.ROOM_STORE_BACKEND}")
    return settings_instance

settings = get_settings()
