"""Canonical configuration surface for FTeX services.

Every field can be overridden from the environment using the ``FTEX_``
prefix and ``__`` between nesting levels, e.g. ``FTEX_SERVER__PORT_NUMBER``.
Environment variables take precedence over the ``.env`` file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEV_JWT_KEY = "dev-only-jwt-key-not-for-production"
DEV_SEALING_KEY = "dev-only-sealing-key-32-bytes!!!"
MIN_JWT_KEY_LENGTH = 32


class ServerSettings(BaseModel):
    """HTTP server configuration. Durations are in seconds."""
    port_number: int = Field(default=33723, ge=1, le=65535)
    shutdown_delay: float = Field(default=5.0, gt=0)
    base_path: str = "/api/rest/v1"
    query_path: str = "/query"
    playground_path: str = "/playground"
    read_timeout: float = Field(default=1.0, gt=0)
    write_timeout: float = Field(default=1.0, gt=0)
    read_header_timeout: float = Field(default=1.0, gt=0)

    @field_validator("base_path", "query_path", "playground_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v.rstrip("/") or "/"


class AuthorizationSettings(BaseModel):
    """Bearer token validation."""
    header_key: str = "Authorization"
    jwt_key: str = DEV_JWT_KEY
    jwt_issuer: str = "ftex.authentication"
    jwt_audience: str = "ftex.api"
    jwt_algorithm: str = "HS256"


class QuoteProviderSettings(BaseModel):
    """Credentials and location of one upstream rate provider."""
    api_key: str = ""
    header_key: str = "apikey"
    endpoint: str = ""


class QuoteConnectionSettings(BaseModel):
    user_agent: str = "ftex/0.1"
    timeout: float = Field(default=5.0, gt=0)


class QuotesSettings(BaseModel):
    fiat_currency: QuoteProviderSettings = Field(
        default_factory=lambda: QuoteProviderSettings(
            header_key="apikey",
            endpoint="https://api.apilayer.com/fixer/convert",
        )
    )
    crypto_currency: QuoteProviderSettings = Field(
        default_factory=lambda: QuoteProviderSettings(
            header_key="X-CoinAPI-Key",
            endpoint="https://rest.coinapi.io/v1/exchangerate",
        )
    )
    connection: QuoteConnectionSettings = Field(default_factory=QuoteConnectionSettings)


class SealingSettings(BaseModel):
    """AES-256-GCM key used for offer ids and pagination cursors."""
    key: str = DEV_SEALING_KEY

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if len(v.encode("utf-8")) != 32:
            raise ValueError("sealing key must be exactly 32 bytes")
        return v


class OfferSettings(BaseModel):
    ttl_seconds: float = Field(default=120.0, gt=0)


class PaginationSettings(BaseModel):
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)


class FtexSettings(BaseSettings):
    """Main FTeX configuration."""

    # Environment
    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    server: ServerSettings = Field(default_factory=ServerSettings)
    authorization: AuthorizationSettings = Field(default_factory=AuthorizationSettings)
    quotes: QuotesSettings = Field(default_factory=QuotesSettings)
    sealing: SealingSettings = Field(default_factory=SealingSettings)
    offers: OfferSettings = Field(default_factory=OfferSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)

    # Redis/Upstash for the offer cache; empty selects the in-memory cache
    redis_url: str = ""

    # PostgreSQL ledger; empty or memory:// selects the in-memory ledger
    database_url: str = ""

    class Config:
        env_prefix = "FTEX_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("pagination")
    @classmethod
    def validate_pagination(cls, v: PaginationSettings) -> PaginationSettings:
        if v.default_page_size > v.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return v

    @model_validator(mode="after")
    def validate_secrets(self) -> "FtexSettings":
        if self.environment == "dev":
            return self
        jwt_key = self.authorization.jwt_key
        if jwt_key.startswith("dev-only-") or len(jwt_key) < MIN_JWT_KEY_LENGTH:
            raise ValueError(
                f"authorization.jwt_key must be a non-default secret of at least {MIN_JWT_KEY_LENGTH} characters "
                "outside dev. Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        if self.sealing.key.startswith("dev-only-"):
            raise ValueError("sealing.key must not use the dev-only default outside dev")
        return self


@lru_cache
def load_settings(env_file: Optional[str] = None) -> FtexSettings:
    """Load settings from the environment and optional env file."""
    if env_file:
        return FtexSettings(_env_file=env_file)
    return FtexSettings()
