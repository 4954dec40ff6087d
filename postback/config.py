"""Configuration for the postback reconciliation service."""
from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="Cashback Postback API")
    version: str = Field(default="1.0.0")
    log_level: str = Field(default="INFO")

    currency: str = Field(default="INR")
    unknown_store_name: str = Field(default="Unknown Store")
    # Larger amounts are rejected as invalid input before anything is written.
    max_sale_amount: Decimal = Field(default=Decimal("1000000000"))
    # Off by default: retried postbacks create duplicate records unless enabled.
    dedupe_postbacks: bool = Field(default=False)

    store_backend: Literal["memory", "firestore"] = Field(default="memory")
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    clicks_collection: str = Field(default="clicks")
    stores_collection: str = Field(default="stores")
    conversions_collection: str = Field(default="conversions")
    transactions_collection: str = Field(default="transactions")
    users_collection: str = Field(default="users")
    pending_balance_field: str = Field(default="pendingCashback")

    model_config = SettingsConfigDict(
        env_prefix="CASHBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
