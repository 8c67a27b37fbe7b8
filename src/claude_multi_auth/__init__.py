"""Multi-account OAuth credential broker and request proxy for the Anthropic API."""

__version__ = "0.3.0"
