"""Configuration management for the SharePoint attachment client."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Sequence
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()


def _split_list(value: str | Sequence[str] | None) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,\s]", value)
    else:
        items = list(value)
    return [item.strip() for item in items if item.strip()]


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    sp_base_url: str | None = Field(None, alias="SP_BASE_URL")
    sp_list_title: str | None = Field(None, alias="SP_LIST_TITLE")
    sp_list_id: str | None = Field(None, alias="SP_LIST_ID")

    sp_auth_mode: Literal["none", "client_credentials", "device_code"] = Field(
        "none", alias="SP_AUTH_MODE"
    )
    sp_tenant_id: str | None = Field(None, alias="SP_TENANT_ID")
    sp_client_id: str | None = Field(None, alias="SP_CLIENT_ID")
    sp_client_secret: str | None = Field(None, alias="SP_CLIENT_SECRET")
    sp_authority: str | None = Field(None, alias="SP_AUTHORITY")
    sp_scopes_raw: str = Field("", alias="SP_SCOPES")
    sp_token_cache: Path = Field(Path("data/msal_token_cache.bin"), alias="SP_TOKEN_CACHE")

    request_timeout: float = Field(30.0, gt=0, alias="SP_REQUEST_TIMEOUT")
    retry_max_attempts: int = Field(5, ge=1, alias="SP_RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(0.5, ge=0, alias="SP_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(60.0, ge=0, alias="SP_RETRY_MAX_DELAY")
    rate_limit_low_water: int = Field(10, ge=0, alias="SP_RATE_LIMIT_LOW_WATER")
    digest_safety_margin: float = Field(20.0, ge=0, alias="SP_DIGEST_SAFETY_MARGIN")
    digest_default_ttl: float = Field(900.0, gt=0, alias="SP_DIGEST_DEFAULT_TTL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator(
        "sp_base_url",
        "sp_list_title",
        "sp_list_id",
        "sp_tenant_id",
        "sp_client_id",
        "sp_client_secret",
        "sp_authority",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("sp_base_url")
    @classmethod
    def _validate_base_url(cls, value):
        if value is None:
            return value
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("SP_BASE_URL must be an absolute http(s) URL.")
        return value.rstrip("/")

    @model_validator(mode="after")
    def _validate_authentication(self):
        if self.sp_auth_mode == "none":
            return self
        if not self.sp_client_id:
            raise ValueError(f"SP_CLIENT_ID is required for {self.sp_auth_mode} mode.")
        if self.sp_auth_mode == "client_credentials":
            if not self.sp_client_secret:
                raise ValueError("SP_CLIENT_SECRET is required for client_credentials mode.")
            if not (self.sp_tenant_id or self.sp_authority):
                raise ValueError(
                    "SP_TENANT_ID or SP_AUTHORITY must be provided for client_credentials mode."
                )
        return self

    @model_validator(mode="after")
    def _validate_retry_window(self):
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("SP_RETRY_MAX_DELAY must not be smaller than SP_RETRY_BASE_DELAY.")
        return self

    @property
    def authority_url(self) -> str:
        if self.sp_authority:
            return self.sp_authority.rstrip("/")
        if self.sp_tenant_id:
            return f"https://login.microsoftonline.com/{self.sp_tenant_id}"
        return "https://login.microsoftonline.com/organizations"

    @property
    def sp_scopes(self) -> list[str]:
        """Scopes requested for SharePoint; defaults to ``<origin>/.default``."""
        scopes = _split_list(self.sp_scopes_raw)
        if scopes:
            return scopes
        if self.sp_base_url:
            parts = urlsplit(self.sp_base_url)
            return [f"{parts.scheme}://{parts.netloc}/.default"]
        return []
