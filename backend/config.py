"""Application-wide configuration constants."""

import os
import platform
import uuid
from pathlib import Path

# --- Identity ---
APP_ID = "clip-desktop-v1"
APP_VERSION = "1.0.0"

# --- Storage ---
DATA_DIR = Path(
    os.environ.get("CLIP_DATA_DIR", str(Path.home() / ".clip-desktop"))
).expanduser()
DATA_DIR.mkdir(parents=True, exist_ok=True)

UPLOADS_DIR = DATA_DIR / "uploads"
SHAREABLES_DIR_NAME = "shareables"
SETTINGS_FILE = DATA_DIR / "settings.json"

# Generate a persistent device ID (stored in the data directory)
_ID_FILE = DATA_DIR / ".device_id"
if _ID_FILE.exists():
    DEVICE_ID = _ID_FILE.read_text().strip()
else:
    DEVICE_ID = str(uuid.uuid4())
    _ID_FILE.write_text(DEVICE_ID)

DEVICE_NAME = platform.node() or "CLIP Desktop"  # user can override in settings

# --- Networking ---
API_HOST = os.environ.get("CLIP_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("SERVER_PORT", "5050"))
DISCOVERY_PORT = int(os.environ.get("CLIP_DISCOVERY_PORT", "41234"))  # UDP
ADVERTISE_INTERVAL = float(os.environ.get("CLIP_ADVERTISE_INTERVAL", "5"))  # seconds
FRESHNESS_WINDOW = 2 * ADVERTISE_INTERVAL  # seconds before a peer is considered offline

# --- Relay ---
SESSION_TIMEOUT = float(os.environ.get("CLIP_SESSION_TIMEOUT", "30"))  # seconds
CONFIRMATION_TIMEOUT = float(os.environ.get("CLIP_CONFIRMATION_TIMEOUT", "25"))  # seconds
MAX_UPLOAD_BYTES = int(os.environ.get("CLIP_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
PREVIEW_LENGTH = 200

# --- Logging ---
LOG_LEVEL = os.environ.get("CLIP_LOG_LEVEL", "INFO").upper()
