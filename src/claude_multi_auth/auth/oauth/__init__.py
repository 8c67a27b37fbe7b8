"""OAuth flows against Anthropic's authorization server."""
