"""YAML-backed device configuration store."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

import yaml

from onvifgate.config.loader import load_config
from onvifgate.errors import ConfigPersistError
from onvifgate.interfaces import CredentialStore
from onvifgate.models.config import Config

logger = logging.getLogger(__name__)


class YamlCredentialStore(CredentialStore):
    """Persists the gateway config (single file, last-write-wins).

    On save, backs up the current file to {path}.bak before overwriting and
    replaces the file atomically.
    """

    def __init__(self, config_path: Path) -> None:
        self._config_path = config_path

    @property
    def path(self) -> Path:
        return self._config_path

    async def open(self) -> None:
        """Create an empty config file when none exists yet."""

        def _create() -> None:
            if self._config_path.exists():
                return
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            self._write_payload(Config().model_dump(mode="json"))
            os.chmod(self._config_path, 0o600)
            logger.info("Created empty config at %s", self._config_path)

        await asyncio.to_thread(_create)

    async def load(self) -> Config:
        return await asyncio.to_thread(load_config, self._config_path)

    async def save(self, config: Config) -> None:
        """Save config to disk with backup.

        Raises:
            ConfigPersistError: If the file could not be written
        """

        def _write() -> None:
            backup_path = Path(str(self._config_path) + ".bak")
            if self._config_path.exists():
                shutil.copy2(self._config_path, backup_path)
            self._write_payload(config.model_dump(mode="json", exclude_none=True))

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise ConfigPersistError(str(self._config_path), exc) from exc
        logger.debug("Saved config with %d device(s) to %s", len(config.devices), self._config_path)

    def _write_payload(self, payload: dict[str, object]) -> None:
        tmp_path = self._config_path.with_suffix(self._config_path.suffix + ".tmp")
        tmp_path.parent.mkdir(parents=True, exist_ok=True)

        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(tmp_path, self._config_path)
