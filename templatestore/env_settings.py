from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class EnvSettings(BaseSettings):
    sqlite_path: str = Field("data/library.db", alias="TEMPLATESTORE_SQLITE_PATH")

    log_level: str = Field("INFO", alias="TEMPLATESTORE_LOG_LEVEL")
    log_dir: str = Field("data/logs", alias="TEMPLATESTORE_LOG_DIR")
    log_retention_days: int = Field(30, alias="TEMPLATESTORE_LOG_RETENTION_DAYS")

    # Import preview heuristics (advisory warnings only)
    large_pack_threshold: int = Field(50, alias="TEMPLATESTORE_LARGE_PACK_THRESHOLD")
    min_average_keywords: float = Field(3, alias="TEMPLATESTORE_MIN_AVERAGE_KEYWORDS")

    max_pack_bytes: int = Field(5 * 1024 * 1024, alias="TEMPLATESTORE_MAX_PACK_BYTES")

    class Config:
        populate_by_name = True


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
