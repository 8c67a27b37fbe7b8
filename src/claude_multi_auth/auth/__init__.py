"""OAuth credentials and token exchange."""
