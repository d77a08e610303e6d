"""Application configuration, environment-driven via pydantic-settings.

get_settings() is cached, so the process reads its environment once.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .identity import IdentityConfig


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # The two principals allowed to exchange vouchers
    user1_email: str = ""
    user2_email: str = ""

    # Headers injected by the identity-aware proxy
    email_header: str = "Cf-Access-Authenticated-User-Email"
    name_header: str = "Cf-Access-Authenticated-User-Name"

    # Storage
    store_backend: Literal["memory", "file"] = "memory"
    store_path: str = "vouchers.json"

    # Origin used in redemption URLs; falls back to the request origin
    public_base_url: Optional[str] = None

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("user1_email", "user2_email", mode="before")
    @classmethod
    def strip_email(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    def identity_config(self) -> IdentityConfig:
        return IdentityConfig(
            user1_email=self.user1_email,
            user2_email=self.user2_email,
            email_header=self.email_header,
            name_header=self.name_header,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
