"""
Relay Session Manager: the single-slot long-poll rendezvous.

A receiving device parks one request (``GET /api/poll``) here; the next
content delivered from the local UI or another sender completes it. Every
transition runs synchronously on the event loop, and the first one to move
the slot away from AWAITING is the only one that writes a response.
"""

import asyncio
import logging
from pathlib import Path
from urllib.parse import quote

from config import SESSION_TIMEOUT, SHAREABLES_DIR_NAME
from content.models import FilePayload
from content.normalizer import derive_url_scheme
from content.storage import write_file
from errors import (
    NoActiveSession,
    PersistenceError,
    SessionAlreadyAwaiting,
    SessionInvariantError,
    ValidationError,
)
from relay.models import ContentReply, FileReply, SessionOutcome, SessionState

logger = logging.getLogger(__name__)


class RelaySessionManager:
    """Owns the one relay session and all of its transitions."""

    def __init__(self, timeout: float = SESSION_TIMEOUT, base_url: str = "") -> None:
        self._timeout = timeout
        self._base_url = base_url
        self._state = SessionState.IDLE
        self._waiter: asyncio.Future | None = None
        self._deadline: asyncio.TimerHandle | None = None
        self._completed = False
        self._event_callbacks: list = []  # async fn(event_type, data)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @base_url.setter
    def base_url(self, url: str) -> None:
        self._base_url = url.rstrip("/")

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    # --- Transitions ---

    def begin_wait(self, waiter: asyncio.Future) -> None:
        """Park ``waiter`` as the held response and arm the deadline."""
        if self._state is not SessionState.IDLE:
            raise SessionAlreadyAwaiting()

        loop = asyncio.get_running_loop()
        self._waiter = waiter
        self._completed = False
        self._deadline = loop.call_later(self._timeout, self.on_timeout)
        self._state = SessionState.AWAITING
        logger.info(f"Device waiting for content ({self._timeout:.0f}s deadline)")

    def _claim(self, new_state: SessionState) -> asyncio.Future:
        """Move AWAITING -> ``new_state`` and disarm the deadline."""
        if self._state is not SessionState.AWAITING:
            raise NoActiveSession()
        self._state = new_state
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        return self._waiter

    def _complete(self, outcome: SessionOutcome) -> None:
        """Write ``outcome`` to the held response exactly once, then go IDLE."""
        if self._completed or self._waiter is None:
            logger.critical(f"Relay response completed twice (outcome: {outcome.state.value})")
            raise SessionInvariantError()
        self._completed = True

        waiter = self._waiter
        self._waiter = None
        self._state = SessionState.IDLE
        if waiter.done():
            # The polling request went away before we could answer it
            logger.debug("Held response already closed; dropping outcome")
        else:
            waiter.set_result(outcome)

    async def deliver(self, content: str) -> dict:
        """Answer the waiting device with text content."""
        if not content:
            raise ValidationError("Content must not be empty")
        self._claim(SessionState.FULFILLED)

        reply = ContentReply(content=content, urlScheme=derive_url_scheme(content))
        body = reply.model_dump(exclude_none=True)
        self._complete(SessionOutcome(
            state=SessionState.FULFILLED, status_code=200, body=body,
        ))
        logger.info(f"Content delivered to waiting device (url scheme: {reply.urlScheme})")

        await self._emit("content-received", {
            "content": content,
            "urlScheme": reply.urlScheme,
        })
        return body

    async def deliver_file(self, file_payload: FilePayload, storage_root: str | Path) -> dict:
        """Persist the file under ``shareables`` and answer with a link to it."""
        waiter = self._claim(SessionState.FULFILLED)
        try:
            data = await file_payload.read_bytes()
            shareables = Path(storage_root) / SHAREABLES_DIR_NAME
            try:
                await asyncio.to_thread(write_file, shareables, file_payload.name, data)
            except OSError as e:
                raise PersistenceError(f"Could not save {file_payload.name}: {e}") from e

            reply = FileReply(
                fileUrl=f"{self._base_url}/api/files/{quote(file_payload.name)}",
                fileName=file_payload.name,
                fileType=file_payload.mime_type,
                fileSize=len(data),
            )
            body = reply.model_dump()
            self._complete(SessionOutcome(
                state=SessionState.FULFILLED, status_code=200, body=body,
            ))
        finally:
            if self._waiter is waiter and not self._completed:
                self._complete(SessionOutcome(
                    state=SessionState.CANCELLED,
                    status_code=500,
                    body={"success": False, "message": "Failed to prepare file"},
                ))

        logger.info(f"File {file_payload.name} ({len(data)} bytes) shared with waiting device")
        await self._emit("file-shared", {
            "fileName": reply.fileName,
            "fileUrl": reply.fileUrl,
        })
        return body

    def on_timeout(self) -> None:
        """Deadline callback: fail the held response if nobody delivered."""
        if self._state is not SessionState.AWAITING:
            return
        self._deadline = None
        self._claim(SessionState.EXPIRED)
        self._complete(SessionOutcome(
            state=SessionState.EXPIRED, status_code=400, body={"success": False},
        ))
        logger.info("Waiting device timed out without content")

    def cancel(self, reason: str = "Session cancelled") -> bool:
        """Fail the held response (shutdown, request teardown). False if idle."""
        if self._state is not SessionState.AWAITING:
            return False
        self._claim(SessionState.CANCELLED)
        self._complete(SessionOutcome(
            state=SessionState.CANCELLED,
            status_code=503,
            body={"success": False, "message": reason},
        ))
        logger.info(f"Relay session cancelled: {reason}")
        return True

    def release(self, waiter: asyncio.Future) -> None:
        """Cancel the session only if ``waiter`` is still the held response."""
        if self._waiter is waiter:
            self.cancel("Request closed")
