"""
Clip Service: applies accepted inbound content on this machine.

Writes text to the clipboard, stores uploaded files, records the activity
log entry and notifies the UI.
"""

import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import Callable

import pyperclip

from activity.log import ContentLog, Direction, Status
from config import UPLOADS_DIR
from content.models import ContentEnvelope, ContentKind, FilePayload
from content.storage import safe_file_name, write_file
from content.normalizer import derive_url_scheme, is_web_link
from errors import ClipboardUnavailable, PersistenceError, ValidationError
from settings import SettingsManager

logger = logging.getLogger(__name__)


class ClipService:
    """Applies content that made it past the boundary (and the gate)."""

    def __init__(
        self,
        settings_manager: SettingsManager,
        content_log: ContentLog,
        uploads_dir: Path = UPLOADS_DIR,
        clipboard: Callable[[str], None] = pyperclip.copy,
        open_link: Callable[[str], object] = webbrowser.open,
    ) -> None:
        self._settings = settings_manager
        self._log = content_log
        self._uploads_dir = Path(uploads_dir)
        self._clipboard = clipboard
        self._open_link = open_link
        self._event_callbacks: list = []  # async fn(event_type, data)

    @property
    def uploads_dir(self) -> Path:
        return self._uploads_dir

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def copy_to_clipboard(self, text: str) -> None:
        """Write ``text`` to the system clipboard off the event loop."""
        try:
            await asyncio.to_thread(self._clipboard, text)
        except pyperclip.PyperclipException as e:
            raise ClipboardUnavailable(f"Clipboard is not available: {e}") from e

    async def receive_text(self, content: str, device_name: str) -> ContentEnvelope:
        """Put received text on the clipboard and tell the UI about it."""
        logger.info(f"Data received from {device_name}: {content[:80]!r}")
        envelope = ContentEnvelope(
            kind=ContentKind.TEXT,
            payload=content,
            origin_device_name=device_name,
            url_scheme=derive_url_scheme(content),
        )

        try:
            await self.copy_to_clipboard(content)
        except ClipboardUnavailable:
            self._log.record(Direction.RECEIVED, device_name, content, "text", Status.FAILED)
            raise
        self._log.record(Direction.RECEIVED, device_name, content, "text", Status.SUCCESS)

        await self._emit("text-received", {
            "content": content,
            "deviceName": device_name,
            "urlScheme": envelope.url_scheme,
        })

        if self._settings.settings.openReceivedLinks and is_web_link(content):
            logger.info("Link detected, opening it in the default browser")
            await asyncio.to_thread(self._open_link, content.strip())

        return envelope

    async def receive_file(
        self, name: str, mime_type: str, data: bytes, device_name: str
    ) -> ContentEnvelope:
        """Store an uploaded file in the uploads directory."""
        try:
            file_name = safe_file_name(name)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        path = self._uploads_dir / file_name
        try:
            await asyncio.to_thread(write_file, self._uploads_dir, file_name, data)
        except OSError as e:
            self._log.record(
                Direction.RECEIVED, device_name, file_name, "file", Status.FAILED,
                file_name=file_name, file_size=len(data),
            )
            raise PersistenceError(f"There was an error processing your file: {e}") from e

        logger.info(f"File from {device_name} saved to {path}")
        self._log.record(
            Direction.RECEIVED, device_name, file_name, "file", Status.SUCCESS,
            file_name=file_name, file_size=len(data),
        )
        await self._emit("file-received", {
            "path": str(path),
            "deviceName": device_name,
            "fileName": file_name,
            "mimeType": mime_type,
        })
        return ContentEnvelope(
            kind=ContentKind.FILE,
            payload=FilePayload(name=file_name, mime_type=mime_type, size=len(data), path=str(path)),
            origin_device_name=device_name,
        )
