from __future__ import annotations
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthConfig(BaseSettings):
    """Signing keys, lifetimes and work factors. Built once and passed by reference."""

    secret: SecretStr = SecretStr("change-me-dev-secret")
    alg: Literal["HS256"] = "HS256"
    kid: Optional[str] = "primary"
    issuer: str = "authservice"
    audience: str = "authservice-clients"

    access_ttl_seconds: int = Field(default=900, ge=1)           # 15 minutes
    refresh_ttl_seconds: int = Field(default=1209600, ge=1)      # 14 days
    leeway_seconds: int = Field(default=0, ge=0)

    password_iterations: int = Field(default=100_000, ge=1_000)
    password_min_length: int = Field(default=1, ge=1)
    password_max_length: int = Field(default=1024, ge=1)

    reset_code_length: int = Field(default=6, ge=4, le=12)
    reset_code_ttl_seconds: int = Field(default=900, ge=1)       # 15 minutes
    reset_code_max_attempts: int = Field(default=5, ge=1)

    # one-time credential for creating the first super admin
    bootstrap_token: Optional[SecretStr] = None
    revoke_sessions_on_password_change: bool = True

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("secret")
    @classmethod
    def secret_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("AUTH_SECRET must be set and non-empty")
        return v

    @model_validator(mode="after")
    def check_ranges(self) -> "AuthConfig":
        if self.access_ttl_seconds >= self.refresh_ttl_seconds:
            raise ValueError("access tokens must expire before refresh tokens")
        if self.password_min_length > self.password_max_length:
            raise ValueError("password_min_length exceeds password_max_length")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size exceeds max_page_size")
        return self
