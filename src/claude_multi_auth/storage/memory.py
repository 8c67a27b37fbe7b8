"""In-process configuration store."""

import copy

from claude_multi_auth.rotation.accounts import AuthConfig
from claude_multi_auth.storage.base import ConfigStore


class InMemoryConfigStore(ConfigStore):
    """Dictionary-backed store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, configs: dict[str, AuthConfig] | None = None) -> None:
        self._configs: dict[str, AuthConfig] = {
            config_id: copy.deepcopy(config)
            for config_id, config in (configs or {}).items()
        }

    async def get(self, config_id: str) -> AuthConfig | None:
        config = self._configs.get(config_id)
        return copy.deepcopy(config) if config is not None else None

    async def set(self, config_id: str, config: AuthConfig) -> None:
        self._configs[config_id] = copy.deepcopy(config)

    def get_location(self) -> str:
        return "memory"
