"""
In-memory activity log.

Append-only record of content sent, received and declined. Keeps the most
recent entries only; durable storage is left to the host application.
"""

import itertools
import logging
import time
from collections import deque
from enum import Enum

from pydantic import BaseModel

logger = logging.getLogger(__name__)

MAX_ENTRIES = 500


class Direction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    DECLINED = "declined"


class Status(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    DECLINED = "declined"


class ContentLogEntry(BaseModel):
    id: int
    timestamp: float
    direction: Direction
    device_name: str
    content: str
    content_type: str  # "text" | "file"
    status: Status
    file_name: str | None = None
    file_size: int | None = None


class LogsFilter(BaseModel):
    direction: Direction | None = None
    device_name: str | None = None
    content_type: str | None = None
    limit: int = 100
    offset: int = 0


class ContentLog:
    """Bounded, newest-first activity log."""

    def __init__(self, max_entries: int = MAX_ENTRIES) -> None:
        self._entries: deque[ContentLogEntry] = deque(maxlen=max_entries)
        self._ids = itertools.count(1)

    def record(
        self,
        direction: Direction,
        device_name: str,
        content: str,
        content_type: str,
        status: Status,
        file_name: str | None = None,
        file_size: int | None = None,
    ) -> ContentLogEntry:
        entry = ContentLogEntry(
            id=next(self._ids),
            timestamp=time.time(),
            direction=direction,
            device_name=device_name,
            content=content,
            content_type=content_type,
            status=status,
            file_name=file_name,
            file_size=file_size,
        )
        self._entries.appendleft(entry)
        logger.info(
            f"{direction.value} {content_type} ({status.value}) from/to {device_name}"
        )
        return entry

    def _matching(self, flt: LogsFilter) -> list[ContentLogEntry]:
        return [
            e for e in self._entries
            if (flt.direction is None or e.direction == flt.direction)
            and (flt.device_name is None or e.device_name == flt.device_name)
            and (flt.content_type is None or e.content_type == flt.content_type)
        ]

    def entries(self, flt: LogsFilter | None = None) -> list[ContentLogEntry]:
        flt = flt or LogsFilter()
        matching = self._matching(flt)
        return matching[flt.offset:flt.offset + flt.limit]

    def count(self, flt: LogsFilter | None = None) -> int:
        return len(self._matching(flt or LogsFilter()))

    def clear(self) -> None:
        self._entries.clear()
