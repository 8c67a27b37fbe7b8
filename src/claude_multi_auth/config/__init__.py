"""Settings for claude-multi-auth."""

from claude_multi_auth.config.settings import OAuthSettings, Settings, get_settings


__all__ = ["OAuthSettings", "Settings", "get_settings"]
