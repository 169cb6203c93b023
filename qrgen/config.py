"""Service settings, read from ``QRGEN_*`` environment variables or ``.env``."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from qrgen.cache import FingerprintCache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QRGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = Field(8080, gt=0, lt=65536)

    default_size: int = Field(512, gt=0)
    max_size: int = Field(4096, gt=0)

    cache_ttl_seconds: float = Field(3600.0, gt=0)
    cache_tti_seconds: float = Field(1800.0, gt=0)
    cache_max_entries: int = Field(1000, gt=0)
    cache_shards: int = Field(16, gt=0)

    logo_timeout_seconds: float = Field(10.0, gt=0)
    logo_max_bytes: int = Field(5 * 1024 * 1024, gt=0)
    logo_margin: int = Field(4, ge=0)
    coalesce: bool = False

    log_level: str = "INFO"
    log_file: str | None = None
    log_json: bool = False

    def build_cache(self) -> FingerprintCache:
        return FingerprintCache(
            ttl=self.cache_ttl_seconds,
            tti=self.cache_tti_seconds,
            max_entries=self.cache_max_entries,
            shards=self.cache_shards,
        )
