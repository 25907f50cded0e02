from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field(default="development", alias="ENVIRONMENT")
    database_url: str = Field(default="sqlite:///./loan_agreements.db", alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Auth
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Content store and agreement assets
    storage_root: str = Field(default="storage", alias="STORAGE_ROOT")
    branding_asset_path: Optional[str] = Field(default=None, alias="BRANDING_ASSET_PATH")
    lender_signature_asset_path: Optional[str] = Field(default=None, alias="LENDER_SIGNATURE_ASSET_PATH")
    lender_name: str = Field(default="Pockett Loan", alias="LENDER_NAME")
    max_signature_bytes: int = Field(default=2 * 1024 * 1024, alias="MAX_SIGNATURE_BYTES")

    # Stale artifact sweep
    cleanup_max_age_days: int = Field(default=30, alias="CLEANUP_MAX_AGE_DAYS")
    cleanup_interval_hours: int = Field(default=24, alias="CLEANUP_INTERVAL_HOURS")

    seed_demo_data: bool = Field(default=True, alias="SEED_DEMO_DATA")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
