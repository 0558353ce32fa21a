import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StorageMode(str, Enum):
    OBJECT_STORE = "r2"
    LOCAL_FS = "fs"
    CLIENT = "indexeddb"


class Settings(BaseSettings):
    # Remote video API
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 60.0

    # Shared secret; unset disables the x-password-hash check
    APP_PASSWORD: Optional[str] = None

    # Database
    DATABASE_URL: str = "sqlite:///./videos.db"

    # Cloudflare R2 (S3 API)
    R2_ACCOUNT_ID: Optional[str] = None
    R2_ACCESS_KEY_ID: Optional[str] = None
    R2_SECRET_ACCESS_KEY: Optional[str] = None
    R2_BUCKET_NAME: Optional[str] = None
    R2_PUBLIC_BASE_URL: Optional[str] = None

    # Storage mode: r2 | fs | indexeddb
    FILE_STORAGE_MODE: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FILE_STORAGE_MODE", "NEXT_PUBLIC_FILE_STORAGE_MODE"),
    )
    VERCEL: Optional[str] = None  # "1" on a read-only filesystem deployment
    OUTPUT_DIR: str = "generated-videos"

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def read_only_fs(self) -> bool:
        return self.VERCEL == "1"

    @property
    def r2_configured(self) -> bool:
        return all(
            (
                self.R2_ACCOUNT_ID,
                self.R2_ACCESS_KEY_ID,
                self.R2_SECRET_ACCESS_KEY,
                self.R2_BUCKET_NAME,
                self.R2_PUBLIC_BASE_URL,
            )
        )


def resolve_storage_mode(settings: Settings) -> StorageMode:
    """
    Single place that decides where mirrored assets live.
    A read-only deployment never gets fs mode, even when asked for it.
    """
    explicit = (settings.FILE_STORAGE_MODE or "").strip().lower()

    if settings.read_only_fs and explicit == StorageMode.LOCAL_FS.value:
        logger.warning("fs mode is not supported on a read-only filesystem, forcing indexeddb mode")
        return StorageMode.CLIENT
    if explicit in {m.value for m in StorageMode}:
        return StorageMode(explicit)
    if explicit:
        logger.warning(f"Unknown FILE_STORAGE_MODE {explicit!r}, falling back to default")
    if settings.read_only_fs:
        return StorageMode.CLIENT
    return StorageMode.OBJECT_STORE


@lru_cache
def get_settings() -> Settings:
    return Settings()
