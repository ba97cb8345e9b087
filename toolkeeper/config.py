import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    # 声明 .env 里会出现的字段
    secret_key: str
    access_token_expire_minutes: int = 120

    database_url: str = "sqlite:///./toolkeeper.db"
    log_level: str = "INFO"

    # 空库启动时写入演示数据（admin/storekeeper/worker1/worker2）
    seed_demo_data: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
