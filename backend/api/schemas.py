"""Request and response shapes for the peer API and the control surface."""

from typing import Any

from pydantic import Base64Bytes, BaseModel, Field

from content.models import FilePayload


# --- Peer-facing ---

class TextPayload(BaseModel):
    """``POST /api/text``: content pushed by a phone or another node."""
    content: str = Field(min_length=1)
    device_name: str = "Device"


class ContentPayload(BaseModel):
    """``POST /api/content``: content for the waiting device."""
    content: str = Field(min_length=1)


class ClientPayload(BaseModel):
    device_name: str = "Unnamed device"


# --- Control surface ---

class IpcResponse(BaseModel):
    """Uniform envelope for every control-surface reply."""
    success: bool
    message: str
    data: Any = None


class ClipboardBody(BaseModel):
    text: str


class RespondContentBody(BaseModel):
    content: str = Field(min_length=1)


class InlineFile(FilePayload):
    """A file picked in the UI, sent inline. Disk paths are not accepted here."""
    data: Base64Bytes
    path: None = None


class RespondFileBody(BaseModel):
    fileData: list[InlineFile]


class SendContentBody(BaseModel):
    serverId: str
    content: str = Field(min_length=1)


class ConfirmationAnswer(BaseModel):
    accepted: bool
