"""User settings, persisted as JSON in the data directory."""

import asyncio
import json
import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError as PydanticValidationError

from config import API_PORT, DEVICE_NAME, SETTINGS_FILE
from errors import PersistenceError

logger = logging.getLogger(__name__)


class DiscoverySettings(BaseModel):
    """Settings the discovery engine exposes; field names follow the UI contract."""
    isDiscoverable: bool = True
    serverIp: str = "127.0.0.1"
    serverPort: int = API_PORT


class Settings(DiscoverySettings):
    deviceName: str = DEVICE_NAME
    requireConfirmation: bool = True
    openReceivedLinks: bool = False


class SettingsUpdate(BaseModel):
    """Partial update; unset fields are left alone."""
    isDiscoverable: bool | None = None
    deviceName: str | None = None
    requireConfirmation: bool | None = None
    openReceivedLinks: bool | None = None


class SettingsManager:
    """Owns the current ``Settings`` and writes them back on every change."""

    def __init__(self, path: Path = SETTINGS_FILE) -> None:
        self._path = Path(path)
        self._settings = Settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def load(self, server_ip: str, server_port: int = API_PORT) -> Settings:
        """Read the settings file, falling back to defaults when missing or corrupt.

        The server address is always refreshed from the live network state.
        """
        if self._path.exists():
            try:
                self._settings = Settings(**json.loads(self._path.read_text()))
            except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
                logger.warning(f"Ignoring unreadable settings file {self._path}: {e}")
                self._settings = Settings()
        self._settings = self._settings.model_copy(
            update={"serverIp": server_ip, "serverPort": server_port}
        )
        return self._settings

    async def save(self) -> None:
        data = self._settings.model_dump_json(indent=2)
        try:
            await asyncio.to_thread(self._write, data)
        except OSError as e:
            raise PersistenceError(f"Could not save settings: {e}") from e

    def _write(self, data: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(data)

    async def update(self, **changes) -> Settings:
        changes = {k: v for k, v in changes.items() if v is not None}
        self._settings = self._settings.model_copy(update=changes)
        await self.save()
        return self._settings
