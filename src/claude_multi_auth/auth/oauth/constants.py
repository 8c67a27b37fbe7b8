"""OAuth constants shared by login, token refresh and API-key creation.

The CLI client id only accepts the console redirect URI, which shows the
authorization code on a page for the user to paste back as ``code#state``.
"""

# OAuth Authorization Server
OAUTH_AUTHORIZE_URL_MAX = "https://claude.ai/oauth/authorize"
OAUTH_AUTHORIZE_URL_CONSOLE = "https://console.anthropic.com/oauth/authorize"
OAUTH_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"
OAUTH_API_KEY_URL = "https://api.anthropic.com/api/oauth/claude_cli/create_api_key"

# Client Configuration
OAUTH_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
OAUTH_REDIRECT_URI = "https://console.anthropic.com/oauth/code/callback"

OAUTH_SCOPES = [
    "org:create_api_key",
    "user:profile",
    "user:inference",
]

# Used when the token endpoint omits expires_in
DEFAULT_TOKEN_EXPIRY_SECONDS = 3600
