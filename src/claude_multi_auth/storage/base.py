"""Abstract base class for account configuration storage."""

from abc import ABC, abstractmethod

from claude_multi_auth.rotation.accounts import AuthConfig


class ConfigStore(ABC):
    """Abstract interface for persisted account configurations.

    Implementations must be read-after-write consistent within one process:
    a ``get`` following a completed ``set`` returns the value just written.
    """

    @abstractmethod
    async def get(self, config_id: str) -> AuthConfig | None:
        """Load a configuration.

        Args:
            config_id: Key of the configuration

        Returns:
            The configuration, or None when nothing is stored under the key

        Raises:
            ConfigStoreError: If the backing storage cannot be read
        """

    @abstractmethod
    async def set(self, config_id: str, config: AuthConfig) -> None:
        """Persist a configuration, replacing any previous value.

        Raises:
            ConfigStoreError: If the configuration could not be written
        """

    @abstractmethod
    def get_location(self) -> str:
        """Human-readable description of where configurations are stored."""
