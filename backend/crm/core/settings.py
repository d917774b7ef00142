from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = Field(default="sqlite:///./crm.db")
    backup_encryption_key: Optional[str] = Field(default=None)
    backup_version: str = Field(default="1.0.0")
    backup_batch_size: int = Field(default=50, ge=1)
    # PostgreSQL rejects statements with more than 65535 bind parameters.
    backup_max_parameters: int = Field(default=65535, ge=1)
    backup_read_group_size: int = Field(default=4, ge=1)
    backup_strict_version: bool = Field(default=False)
    backup_log_file: str = Field(default="backup.log")
    jwt_secret: str = Field(default="your-secret-key")
    jwt_algorithm: str = Field(default="HS256")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, default)
    if value == "":
        return default
    return value


def _load_settings() -> Settings:
    key = _env("BACKUP_ENCRYPTION_KEY")
    return Settings(
        database_url=_env("DATABASE_URL", "sqlite:///./crm.db"),
        backup_encryption_key=key,
        backup_batch_size=int(_env("BACKUP_BATCH_SIZE", "50")),
        backup_max_parameters=int(_env("BACKUP_MAX_PARAMETERS", "65535")),
        backup_read_group_size=int(_env("BACKUP_READ_GROUP_SIZE", "4")),
        backup_strict_version=_env("BACKUP_STRICT_VERSION", "0") == "1",
        backup_log_file=_env("BACKUP_LOG_FILE", "backup.log"),
        jwt_secret=_env("JWT_SECRET", "your-secret-key"),
        jwt_algorithm=_env("JWT_ALGORITHM", "HS256"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings"]
