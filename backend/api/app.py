"""FastAPI application assembly."""

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.control import control_router
from api.handlers import register_exception_handlers
from api.routes import router
from api.websocket import ConnectionManager
from config import APP_VERSION


def build_app(ws_manager: ConnectionManager, lifespan=None) -> FastAPI:
    """Create the app with the peer API, the control surface and the UI socket."""
    app = FastAPI(
        title="CLIP Desktop",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    # Phones call the peer API from arbitrary origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(router)
    app.include_router(control_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app
