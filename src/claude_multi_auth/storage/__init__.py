"""Persistence for account configurations."""

from claude_multi_auth.storage.base import ConfigStore
from claude_multi_auth.storage.json_file import JsonFileConfigStore
from claude_multi_auth.storage.memory import InMemoryConfigStore


__all__ = ["ConfigStore", "InMemoryConfigStore", "JsonFileConfigStore"]
