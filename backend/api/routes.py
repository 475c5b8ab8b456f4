"""Peer-facing REST API: the routes phones and other CLIP nodes call."""

import asyncio
import logging
from pathlib import Path

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from activity.log import ContentLog, Direction, Status
from api.schemas import ClientPayload, ContentPayload, TextPayload
from config import MAX_UPLOAD_BYTES, SHAREABLES_DIR_NAME
from confirmation.gate import ConfirmationGate
from content.clip_service import ClipService
from content.storage import safe_file_name
from errors import ConfirmationTimeout
from relay.models import SessionOutcome
from relay.session import RelaySessionManager
from settings import SettingsManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_relay: RelaySessionManager | None = None
_gate: ConfirmationGate | None = None
_clip_service: ClipService | None = None
_settings: SettingsManager | None = None
_content_log: ContentLog | None = None
_storage_root: Path | None = None
_notify = None  # async fn(event_type, data)


def init_routes(
    relay: RelaySessionManager,
    gate: ConfirmationGate,
    clip_service: ClipService,
    settings_manager: SettingsManager,
    content_log: ContentLog,
    storage_root: Path,
    notify,
) -> None:
    """Inject service dependencies into the routes module."""
    global _relay, _gate, _clip_service, _settings, _content_log, _storage_root, _notify
    _relay = relay
    _gate = gate
    _clip_service = clip_service
    _settings = settings_manager
    _content_log = content_log
    _storage_root = Path(storage_root)
    _notify = notify


async def _confirm(content: str, device_name: str, content_type: str) -> dict | None:
    """Run the confirmation gate if enabled. Returns the rejection reply, if any."""
    if not _settings.settings.requireConfirmation:
        return None
    try:
        accepted = await _gate.confirm(content, device_name, content_type)
    except ConfirmationTimeout as e:
        _content_log.record(Direction.DECLINED, device_name, content, content_type, Status.DECLINED)
        return {"success": False, "message": e.message}
    if accepted:
        return None
    _content_log.record(Direction.DECLINED, device_name, content, content_type, Status.DECLINED)
    return {"success": False, "message": "Content declined by user"}


@router.get("")
async def health():
    return {"success": True}


@router.get("/poll")
async def poll():
    """Hold the request open until content is delivered or the deadline passes."""
    waiter = asyncio.get_running_loop().create_future()
    _relay.begin_wait(waiter)
    try:
        outcome: SessionOutcome = await waiter
    finally:
        # No-op unless this request is torn down while still held
        _relay.release(waiter)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/text")
async def receive_text(body: TextPayload):
    """Receive text from a phone or another CLIP node."""
    rejection = await _confirm(body.content, body.device_name, "text")
    if rejection:
        return rejection

    envelope = await _clip_service.receive_text(body.content, body.device_name)
    reply = {"success": True, "message": "Content accepted"}
    if envelope.url_scheme:
        reply["urlScheme"] = envelope.url_scheme
    return reply


@router.post("/content")
async def send_content(body: ContentPayload):
    """Answer the waiting device with ``content``."""
    await _relay.deliver(body.content)
    _content_log.record(Direction.SENT, "Waiting device", body.content, "text", Status.SUCCESS)
    return {"success": True}


@router.post("/image")
async def receive_image(
    file: UploadFile | None = File(None),
    device_name: str = Form("Device"),
):
    """Receive a file upload (usually an image) from a phone."""
    if file is None or not file.filename:
        logger.info(f"No file from {device_name} uploaded")
        return JSONResponse(status_code=400, content={"success": False, "message": "No file uploaded"})

    data = await file.read(MAX_UPLOAD_BYTES + 1)
    await file.close()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    rejection = await _confirm(file.filename, device_name, "file")
    if rejection:
        return rejection

    await _clip_service.receive_file(
        file.filename,
        file.content_type or "application/octet-stream",
        data,
        device_name,
    )
    return {"success": True}


@router.get("/files/{filename}")
async def get_shared_file(filename: str):
    """Serve a file previously relayed to a waiting device."""
    try:
        name = safe_file_name(filename)
    except ValueError:
        raise HTTPException(status_code=404, detail="File not found")
    path = _storage_root / SHAREABLES_DIR_NAME / name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


@router.post("/client")
async def open_client(body: ClientPayload | None = None):
    """A device asks for this node's attention (it wants content)."""
    device_name = body.device_name if body else ClientPayload().device_name
    logger.info(f"Opened by device {device_name}")
    await _notify("client-opened", {"deviceName": device_name})
    return {"success": True}
