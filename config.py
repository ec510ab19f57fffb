"""
config.py
Application settings (env vars / .env, prefix GYM_).
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GYM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    debug: bool = False

    # SQLite file holding members, sessions and subscriptions
    db_file: Path = Field(default=Path(__file__).with_name("gym.db"))

    # Organization defaults
    default_currency: str = "VND"
    default_session_length_minutes: int = 60

    # Auth
    bcrypt_rounds: int = 12
    default_admin_email: str = "admin@test.com"
    default_admin_password: str = "admin"
    default_business_name: str = "Demo Fitness"


@lru_cache
def get_settings() -> Settings:
    return Settings()
