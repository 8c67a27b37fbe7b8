"""Constants for the rotation module."""

# Cooldown applied when upstream returns 429 without a usable retry hint
DEFAULT_RETRY_AFTER_SECONDS = 60

# Cooldown applied to an account whose token refresh failed
REFRESH_FAILURE_COOLDOWN_SECONDS = 300


ONE_MINUTE_MILLISECONDS = 60 * 1000
ONE_HOUR_MILLISECONDS = 60 * ONE_MINUTE_MILLISECONDS

CONFIG_TYPE_MULTI = "multi-oauth"
CONFIG_TYPE_LEGACY = "oauth"

MIGRATED_ACCOUNT_ID = "migrated-account"
MIGRATED_ACCOUNT_LABEL = "Migrated Account"

ACCOUNT_MODES: tuple[str, ...] = ("max", "console")
