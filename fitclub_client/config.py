"""
Client-side settings.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FITCLUB_", env_file=".env", extra="ignore", frozen=True
    )

    api_url: str = Field(default="http://localhost:3001")
    api_prefix: str = Field(default="/api")


@lru_cache(maxsize=1)
def get_client_settings() -> ClientSettings:
    return ClientSettings()
