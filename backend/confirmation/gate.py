"""
Confirmation Gate.

Holds inbound content until the local user accepts or declines it. Each
pending request is a future keyed by its id; the entry is removed as soon
as the inbound caller stops waiting, whether it got a decision or timed out.
"""

import asyncio
import logging
import time
import uuid
from enum import Enum

from pydantic import BaseModel

from config import CONFIRMATION_TIMEOUT, PREVIEW_LENGTH
from errors import ConfirmationTimeout, UnknownConfirmation

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ConfirmationRequest(BaseModel):
    """A pending accept/decline prompt, as shown to the UI."""
    id: str
    deviceName: str
    contentPreview: str
    contentType: str  # "text" | "file"
    decision: Decision = Decision.PENDING
    createdAt: float


def make_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    return content if len(content) <= limit else content[:limit] + "..."


class ConfirmationGate:
    """Registry of pending confirmations, each resolved exactly once."""

    def __init__(
        self,
        timeout: float = CONFIRMATION_TIMEOUT,
        relay_timeout: float | None = None,
    ) -> None:
        if relay_timeout is not None and timeout > relay_timeout:
            raise ValueError(
                f"Confirmation timeout ({timeout}s) must not exceed "
                f"the relay session timeout ({relay_timeout}s)"
            )
        self._timeout = timeout
        self._requests: dict[str, ConfirmationRequest] = {}
        self._futures: dict[str, asyncio.Future] = {}
        self._event_callbacks: list = []  # async fn(event_type, data)

    @property
    def timeout(self) -> float:
        return self._timeout

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    def pending(self) -> list[ConfirmationRequest]:
        return list(self._requests.values())

    async def request_confirmation(
        self, content: str, device_name: str, content_type: str
    ) -> str:
        """Register a pending request and prompt the UI. Returns its id."""
        request = ConfirmationRequest(
            id=str(uuid.uuid4()),
            deviceName=device_name,
            contentPreview=make_preview(content),
            contentType=content_type,
            createdAt=time.time(),
        )
        self._requests[request.id] = request
        self._futures[request.id] = asyncio.get_running_loop().create_future()
        logger.info(f"Awaiting confirmation {request.id} for {content_type} from {device_name}")

        await self._emit("content-confirmation-request", {
            "id": request.id,
            "deviceName": device_name,
            "content": request.contentPreview,
            "contentType": content_type,
        })
        return request.id

    async def wait_for_decision(self, confirmation_id: str) -> bool:
        """Wait for the user's decision; declines and raises on timeout."""
        future = self._futures.get(confirmation_id)
        if future is None:
            raise UnknownConfirmation()
        try:
            return await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            self._requests[confirmation_id].decision = Decision.DECLINED
            logger.info(f"Confirmation {confirmation_id} timed out; treating as declined")
            raise ConfirmationTimeout()
        finally:
            self._futures.pop(confirmation_id, None)
            self._requests.pop(confirmation_id, None)

    async def confirm(self, content: str, device_name: str, content_type: str) -> bool:
        confirmation_id = await self.request_confirmation(content, device_name, content_type)
        return await self.wait_for_decision(confirmation_id)

    def respond_to_confirmation(self, confirmation_id: str, accepted: bool) -> None:
        """Resolve a pending request. Unknown or already resolved ids are rejected."""
        future = self._futures.get(confirmation_id)
        request = self._requests.get(confirmation_id)
        if future is None or future.done() or request is None:
            raise UnknownConfirmation()

        request.decision = Decision.ACCEPTED if accepted else Decision.DECLINED
        future.set_result(accepted)
        logger.info(f"Confirmation {confirmation_id} {request.decision.value}")

    def close(self) -> None:
        """Decline everything still pending (shutdown)."""
        for confirmation_id, future in list(self._futures.items()):
            if not future.done():
                self._requests[confirmation_id].decision = Decision.DECLINED
                future.set_result(False)
