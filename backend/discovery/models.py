"""Pydantic models for peer discovery."""

from pydantic import BaseModel, Field


class PeerNode(BaseModel):
    """Represents a discovered CLIP node on the LAN."""
    id: str
    ip: str
    port: int
    deviceName: str
    lastSeen: float  # Unix timestamp


class Announcement(BaseModel):
    """The JSON payload broadcast over UDP."""
    service: str
    deviceName: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    identity: str = Field(min_length=1)
    timestamp: float
