"""Pydantic models for relayed content."""

import asyncio
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Base64Bytes, ConfigDict, Field, field_validator, model_validator

from content.storage import safe_file_name
from errors import PersistenceError


class ContentKind(str, Enum):
    TEXT = "text"
    FILE = "file"


class FilePayload(BaseModel):
    """A file handed to the relay, either inline (base64) or by local path."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    mime_type: str = Field(default="application/octet-stream", alias="type")
    size: int = Field(default=0, ge=0)
    data: Base64Bytes | None = None
    path: str | None = None

    @field_validator("name")
    @classmethod
    def strip_directories(cls, v: str) -> str:
        return safe_file_name(v)

    @model_validator(mode="after")
    def require_source(self) -> "FilePayload":
        if self.data is None and not self.path:
            raise ValueError("Either data or path is required")
        return self

    async def read_bytes(self) -> bytes:
        """Return the file contents, reading ``path`` off the event loop."""
        if self.data is not None:
            return self.data
        try:
            return await asyncio.to_thread(Path(self.path).read_bytes)
        except OSError as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e


class ContentEnvelope(BaseModel):
    """Content as it crossed the boundary, with its origin."""
    kind: ContentKind
    payload: str | FilePayload
    origin_device_name: str
    url_scheme: str | None = None
