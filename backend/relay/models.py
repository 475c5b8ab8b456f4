"""Pydantic models for the relay session."""

from enum import Enum

from pydantic import BaseModel


class SessionState(str, Enum):
    """All possible states of the relay slot."""
    IDLE = "idle"
    AWAITING = "awaiting"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SessionOutcome(BaseModel):
    """What the held long-poll request answers with."""
    state: SessionState
    status_code: int
    body: dict


class ContentReply(BaseModel):
    content: str
    urlScheme: str | None = None


class FileReply(BaseModel):
    success: bool = True
    fileUrl: str
    fileName: str
    fileType: str
    fileSize: int
