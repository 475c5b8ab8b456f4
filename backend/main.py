"""
CLIP Desktop node: FastAPI application entry point.

Starts LAN discovery on startup, serves the peer API, the local control
surface and the UI WebSocket, and releases every held connection on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from activity.log import ContentLog
from api.app import build_app
from api.control import init_control
from api.routes import init_routes
from api.websocket import ConnectionManager
from config import API_HOST, API_PORT, DATA_DIR, LOG_LEVEL, UPLOADS_DIR
from confirmation.gate import ConfirmationGate
from content.clip_service import ClipService
from discovery.network import get_server_ip
from discovery.service import DiscoveryService
from errors import PersistenceError
from relay.session import RelaySessionManager
from settings import SettingsManager

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Service singletons ---
settings_manager = SettingsManager()
content_log = ContentLog()
discovery_service = DiscoveryService(settings_manager)
relay = RelaySessionManager()
gate = ConfirmationGate(relay_timeout=relay.timeout)
clip_service = ClipService(settings_manager, content_log, uploads_dir=UPLOADS_DIR)
ws_manager = ConnectionManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop background services."""
    logger.info("Starting CLIP Desktop services...")

    try:
        server_ip = get_server_ip()
        settings_manager.load(server_ip, API_PORT)
        try:
            await settings_manager.save()
        except PersistenceError as e:
            logger.warning(e.message)
        relay.base_url = f"http://{server_ip}:{API_PORT}"

        # Wire up UI event broadcasting
        relay.on_event(ws_manager.handle_event)
        gate.on_event(ws_manager.handle_event)
        clip_service.on_event(ws_manager.handle_event)
        discovery_service.on_peer_change(ws_manager.handle_event)

        await discovery_service.start()

        logger.info(f"CLIP Desktop ready on {server_ip}:{API_PORT}")

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        # Shutdown: no held poll or pending confirmation may outlive us
        logger.info("Shutting down CLIP Desktop services...")
        relay.cancel("Server shutting down")
        gate.close()
        await discovery_service.stop()


init_routes(
    relay,
    gate,
    clip_service,
    settings_manager,
    content_log,
    storage_root=DATA_DIR,
    notify=ws_manager.handle_event,
)
init_control(
    discovery_service,
    relay,
    gate,
    clip_service,
    settings_manager,
    content_log,
    storage_root=DATA_DIR,
)

app = build_app(ws_manager, lifespan=lifespan)


def main() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
