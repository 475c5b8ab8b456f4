"""
Local control surface used by the desktop UI.

Every route answers with the ``{success, message, data?}`` envelope;
expected failures come back as ``success: false`` rather than HTTP errors.
Only loopback clients may call these routes.
"""

import logging
import socket
from pathlib import Path
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from activity.log import ContentLog, Direction, LogsFilter, Status
from api.schemas import (
    ClipboardBody,
    ConfirmationAnswer,
    IpcResponse,
    RespondContentBody,
    RespondFileBody,
    SendContentBody,
)
from config import APP_VERSION
from confirmation.gate import ConfirmationGate
from content.clip_service import ClipService
from discovery.service import DiscoveryService
from errors import ClipError
from relay.session import RelaySessionManager
from settings import SettingsManager, SettingsUpdate

logger = logging.getLogger(__name__)

LOCAL_HOSTS = frozenset({"127.0.0.1", "::1", "localhost"})


def _origin_host(origin: str) -> str | None:
    try:
        return urlsplit(origin).hostname
    except ValueError:
        return None


def require_local_client(request: Request) -> None:
    """Reject control calls that do not come from this machine.

    A browser on this machine passes the address check, so a request carrying
    an ``Origin`` must also come from a page served by this machine.
    """
    host = request.client.host if request.client else None
    if host not in LOCAL_HOSTS:
        raise HTTPException(status_code=403, detail="Control surface is local only")
    origin = request.headers.get("origin")
    if origin is not None and _origin_host(origin) not in LOCAL_HOSTS:
        logger.warning(f"Refusing control call from page at {origin}")
        raise HTTPException(status_code=403, detail="Control surface is local only")


control_router = APIRouter(prefix="/control", dependencies=[Depends(require_local_client)])

# These will be injected by main.py at startup
_discovery: DiscoveryService | None = None
_relay: RelaySessionManager | None = None
_gate: ConfirmationGate | None = None
_clip_service: ClipService | None = None
_settings: SettingsManager | None = None
_content_log: ContentLog | None = None
_storage_root: Path | None = None
_peer_transport: httpx.AsyncBaseTransport | None = None
_peer_timeout: float = 35.0


def init_control(
    discovery: DiscoveryService,
    relay: RelaySessionManager,
    gate: ConfirmationGate,
    clip_service: ClipService,
    settings_manager: SettingsManager,
    content_log: ContentLog,
    storage_root: Path,
    peer_transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Inject service dependencies into the control module."""
    global _discovery, _relay, _gate, _clip_service, _settings, _content_log
    global _storage_root, _peer_transport, _peer_timeout
    _discovery = discovery
    _relay = relay
    _gate = gate
    _clip_service = clip_service
    _settings = settings_manager
    _content_log = content_log
    _storage_root = Path(storage_root)
    _peer_transport = peer_transport
    # The peer may hold our request while its user decides
    _peer_timeout = relay.timeout + 5


def _ok(data=None, message: str = "Success") -> IpcResponse:
    return IpcResponse(success=True, message=message, data=data)


def _fail(message: str) -> IpcResponse:
    return IpcResponse(success=False, message=message)


# --- Discovery and settings ---

@control_router.get("/servers", response_model=IpcResponse)
async def get_servers():
    return _ok([p.model_dump() for p in _discovery.get_active_servers()])


@control_router.get("/settings", response_model=IpcResponse)
async def get_settings():
    return _ok(_settings.settings.model_dump())


@control_router.put("/settings", response_model=IpcResponse)
async def update_settings(body: SettingsUpdate):
    try:
        if body.isDiscoverable is not None:
            await _discovery.set_discoverable(body.isDiscoverable)
        await _settings.update(**body.model_dump(exclude={"isDiscoverable"}))
    except ClipError as e:
        return _fail(e.message)
    return _ok(True)


# --- Clipboard and relay ---

@control_router.post("/clipboard", response_model=IpcResponse)
async def copy_to_clipboard(body: ClipboardBody):
    try:
        await _clip_service.copy_to_clipboard(body.text)
    except ClipError as e:
        return _fail(e.message)
    return _ok()


@control_router.post("/respond-content", response_model=IpcResponse)
async def respond_content_to_device(body: RespondContentBody):
    """Answer the waiting device with text typed in the UI."""
    try:
        await _relay.deliver(body.content)
    except ClipError as e:
        return _fail(e.message)
    _content_log.record(Direction.SENT, "Waiting device", body.content, "text", Status.SUCCESS)
    return _ok()


@control_router.post("/respond-file", response_model=IpcResponse)
async def respond_file_to_device(body: RespondFileBody):
    """Answer the waiting device with a link to the first selected file."""
    if not body.fileData:
        return _fail("No file selected")
    file = body.fileData[0]
    try:
        reply = await _relay.deliver_file(file, _storage_root)
    except ClipError as e:
        return _fail(e.message)
    _content_log.record(
        Direction.SENT, "Waiting device", file.name, "file", Status.SUCCESS,
        file_name=file.name, file_size=reply["fileSize"],
    )
    return _ok(reply)


@control_router.post("/send-content", response_model=IpcResponse)
async def send_content_to_server(body: SendContentBody):
    """Push text to another CLIP node's ``/api/text``."""
    server = _discovery.get_server(body.serverId)
    if server is None:
        return _fail("Server not found or no longer active")

    url = f"http://{server.ip}:{server.port}/api/text"
    payload = {"content": body.content, "device_name": _settings.settings.deviceName or socket.gethostname()}
    try:
        async with httpx.AsyncClient(transport=_peer_transport, timeout=_peer_timeout) as client:
            response = await client.post(url, json=payload)
        result = response.json()
        if not isinstance(result, dict):
            result = {}
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Could not reach {server.deviceName} at {url}: {e}")
        _content_log.record(Direction.SENT, server.deviceName, body.content, "text", Status.FAILED)
        return _fail("There was an error sending content to another CLIP Server. Please try again")

    if response.is_success and result.get("success"):
        _content_log.record(Direction.SENT, server.deviceName, body.content, "text", Status.SUCCESS)
        return _ok()

    message = result.get("message") or "There was an error sending content to another CLIP Server. Please try again"
    status = Status.DECLINED if response.is_success else Status.FAILED
    _content_log.record(Direction.SENT, server.deviceName, body.content, "text", status)
    return _fail(message)


# --- Confirmations ---

@control_router.get("/confirmations", response_model=IpcResponse)
async def list_confirmations():
    return _ok([r.model_dump(mode="json") for r in _gate.pending()])


@control_router.post("/confirmations/{confirmation_id}", response_model=IpcResponse)
async def respond_to_content_confirmation(confirmation_id: str, body: ConfirmationAnswer):
    try:
        _gate.respond_to_confirmation(confirmation_id, body.accepted)
    except ClipError as e:
        return _fail(e.message)
    return _ok(message="Response recorded")


# --- Activity log ---

@control_router.get("/logs", response_model=IpcResponse)
async def get_logs(flt: LogsFilter = Depends()):
    return _ok([e.model_dump(mode="json") for e in _content_log.entries(flt)])


@control_router.get("/logs/count", response_model=IpcResponse)
async def get_logs_count(flt: LogsFilter = Depends()):
    return _ok(_content_log.count(flt))


@control_router.delete("/logs", response_model=IpcResponse)
async def clear_logs():
    _content_log.clear()
    return _ok(message="Logs cleared successfully")


@control_router.get("/version", response_model=IpcResponse)
async def get_app_version():
    return _ok(APP_VERSION)
