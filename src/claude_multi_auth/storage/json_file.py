"""JSON file configuration store.

The file holds either a single configuration (the ``multi-auth.json`` layout,
recognised by its top-level ``type`` key) or a mapping of config ids to
configurations. A single-configuration file is served under the store's
default id and is written back in the same layout.
"""

import asyncio
import os
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger

from claude_multi_auth.exceptions import ConfigStoreError
from claude_multi_auth.rotation.accounts import AuthConfig
from claude_multi_auth.storage.base import ConfigStore


logger = get_logger(__name__)


class JsonFileConfigStore(ConfigStore):
    """Configuration store backed by one JSON document on disk."""

    def __init__(self, path: Path | str, default_config_id: str = "anthropic") -> None:
        self.path = Path(path).expanduser()
        self.default_config_id = default_config_id

    def get_location(self) -> str:
        return str(self.path)

    async def get(self, config_id: str) -> AuthConfig | None:
        return await asyncio.to_thread(self._get_sync, config_id)

    async def set(self, config_id: str, config: AuthConfig) -> None:
        await asyncio.to_thread(self._set_sync, config_id, config)

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError as e:
            logger.error("config_file_invalid_json", path=str(self.path), error=str(e))
            raise ConfigStoreError(
                f"Invalid JSON in {self.path}: {e}", location=str(self.path)
            ) from e
        except OSError as e:
            logger.error("config_file_read_failed", path=str(self.path), error=str(e))
            raise ConfigStoreError(
                f"Cannot read {self.path}: {e}", location=str(self.path)
            ) from e

        if not isinstance(data, dict):
            raise ConfigStoreError(
                f"Expected a JSON object in {self.path}", location=str(self.path)
            )
        return data

    def _is_single_config(self, document: dict[str, Any]) -> bool:
        return "type" in document

    def _get_sync(self, config_id: str) -> AuthConfig | None:
        document = self._read_document()
        if self._is_single_config(document):
            entry = document if config_id == self.default_config_id else None
        else:
            entry = document.get(config_id)

        if entry is None:
            return None
        if not isinstance(entry, dict):
            raise ConfigStoreError(
                f"Configuration '{config_id}' is not an object", location=str(self.path)
            )

        try:
            config = AuthConfig.from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigStoreError(
                f"Invalid configuration '{config_id}': {e}", location=str(self.path)
            ) from e

        logger.debug(
            "config_loaded",
            path=str(self.path),
            config_id=config_id,
            accounts=len(config.accounts),
        )
        return config

    def _set_sync(self, config_id: str, config: AuthConfig) -> None:
        document = self._read_document()
        if not document or (
            self._is_single_config(document) and config_id == self.default_config_id
        ):
            # Fresh files and single-config files keep the multi-auth.json layout
            if config_id == self.default_config_id:
                document = config.to_dict()
            else:
                document = {config_id: config.to_dict()}
        elif self._is_single_config(document):
            document = {self.default_config_id: document, config_id: config.to_dict()}
        else:
            document[config_id] = config.to_dict()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            # Write to temp file first, then rename for atomicity
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(orjson.dumps(document, option=orjson.OPT_INDENT_2))
            temp_path.replace(self.path)
        except OSError as e:
            logger.error("config_save_failed", path=str(self.path), error=str(e))
            raise ConfigStoreError(
                f"Cannot write {self.path}: {e}", location=str(self.path)
            ) from e

        logger.debug(
            "config_saved",
            path=str(self.path),
            config_id=config_id,
            accounts=len(config.accounts),
        )
