from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, Field, PositiveFloat, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from streampost.core.exceptions import ConfigurationError, EmptyBatchPolicy


# Required at first use, not at load time: a process may start (and log) before
# every endpoint is configured.
REQUIRED_SETTINGS: dict[str, str] = {
    "schema_url": "NYPL_API_SCHEMA_URL",
    "post_url": "NYPL_API_POST_URL",
    "oauth_key": "NYPL_OAUTH_KEY",
    "oauth_secret": "NYPL_OAUTH_SECRET",
    "oauth_url": "NYPL_OAUTH_URL",
}


class StreamPostSettings(BaseSettings):
    """Environment-driven settings for the bridge."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- endpoints and credentials ---
    schema_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("NYPL_API_SCHEMA_URL", "schema_url"))
    post_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("NYPL_API_POST_URL", "post_url"))
    oauth_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("NYPL_OAUTH_KEY", "oauth_key"))
    oauth_secret: Optional[str] = Field(default=None, validation_alias=AliasChoices("NYPL_OAUTH_SECRET", "oauth_secret"))
    oauth_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("NYPL_OAUTH_URL", "oauth_url"))

    # --- behaviour ---
    oauth_token_path: str = Field(
        default="oauth/token",
        validation_alias=AliasChoices("STREAMPOST_OAUTH_TOKEN_PATH", "oauth_token_path"),
    )
    http_timeout_seconds: Optional[PositiveFloat] = Field(
        default=None,
        validation_alias=AliasChoices("STREAMPOST_HTTP_TIMEOUT_SECONDS", "http_timeout_seconds"),
    )
    empty_batch_policy: EmptyBatchPolicy = Field(
        default=EmptyBatchPolicy.WARN,
        validation_alias=AliasChoices("STREAMPOST_EMPTY_BATCH_POLICY", "empty_batch_policy"),
    )

    # --- logging ---
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    log_format: Literal["text", "json"] = Field(
        default="text",
        validation_alias=AliasChoices("STREAMPOST_LOG_FORMAT", "log_format"),
    )

    @field_validator("empty_batch_policy", mode="before")
    @classmethod
    def _lower_policy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("schema_url", "post_url", "oauth_key", "oauth_secret", "oauth_url", mode="before")
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def require(self, name: str) -> str:
        """Return a required setting or raise ConfigurationError naming its env var."""
        value = getattr(self, name)
        if value is None:
            raise ConfigurationError(name, REQUIRED_SETTINGS.get(name))
        return value

    def missing_required(self) -> List[str]:
        return [env for name, env in REQUIRED_SETTINGS.items() if getattr(self, name) is None]
