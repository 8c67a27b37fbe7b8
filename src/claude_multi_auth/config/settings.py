"""Settings for the multi-account credential broker.

Values come from environment variables (prefix ``MULTI_AUTH_``) and an optional
``.env`` file. Nested OAuth settings use the ``__`` delimiter, for example
``MULTI_AUTH_OAUTH__CLIENT_ID``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from claude_multi_auth.auth.oauth.constants import (
    OAUTH_API_KEY_URL,
    OAUTH_AUTHORIZE_URL_CONSOLE,
    OAUTH_AUTHORIZE_URL_MAX,
    OAUTH_CLIENT_ID,
    OAUTH_REDIRECT_URI,
    OAUTH_SCOPES,
    OAUTH_TOKEN_URL,
)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "OAuthSettings",
    "Settings",
    "get_settings",
    "parse_comma_separated",
]


DEFAULT_CONFIG_FILE = Path("~/.config/opencode/multi-auth.json")


def parse_comma_separated(value: str | list[str]) -> list[str]:
    """Parse a comma-separated string into a list, dropping empty items.

    Lists are passed through with each item stripped.
    """
    items = value.split(",") if isinstance(value, str) else value
    return [item.strip() for item in items if item and item.strip()]


class OAuthSettings(BaseModel):
    """OAuth endpoints and client identity."""

    token_url: str = OAUTH_TOKEN_URL
    authorize_url_max: str = OAUTH_AUTHORIZE_URL_MAX
    authorize_url_console: str = OAUTH_AUTHORIZE_URL_CONSOLE
    api_key_url: str = OAUTH_API_KEY_URL
    client_id: str = OAUTH_CLIENT_ID
    redirect_uri: str = OAUTH_REDIRECT_URI
    scopes: list[str] = Field(default_factory=lambda: list(OAUTH_SCOPES))
    request_timeout: float = Field(default=30.0, gt=0)


class Settings(BaseSettings):
    """Configuration for the proxy, the CLI and the local server."""

    model_config = SettingsConfigDict(
        env_prefix="MULTI_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Persistence
    config_file: Path = Field(
        default=DEFAULT_CONFIG_FILE,
        description="JSON file holding the account configuration",
    )
    config_id: str = Field(
        default="anthropic",
        description="Key of the account configuration inside the config file",
    )

    # Upstream
    upstream_base_url: str = Field(default="https://api.anthropic.com")
    request_timeout: float = Field(default=600.0, gt=0)
    max_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Failover retries after the first attempt",
    )
    user_agent: str = Field(default="claude-cli/2.1.2 (external, cli)")
    tool_prefix: str = Field(default="mcp_", min_length=1)
    system_identity: str = Field(
        default="You are Claude Code, Anthropic's official CLI for Claude.",
        description="Prepended to Messages API system prompts; empty disables it",
    )
    required_betas: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["oauth-2025-04-20", "interleaved-thinking-2025-05-14"]
    )
    long_context_beta: str = Field(default="context-1m-2025-08-07")
    long_context_models: str = Field(
        default=r"^claude-(?:sonnet|opus)-4",
        description="Regex matched against the request model for long-context eligibility",
    )

    # Local server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8787, ge=1, le=65535)

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    oauth: OAuthSettings = Field(default_factory=OAuthSettings)

    @field_validator("required_betas", mode="before")
    @classmethod
    def validate_required_betas(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_comma_separated(v)
        return v

    @field_validator("config_file", mode="after")
    @classmethod
    def expand_config_file(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
