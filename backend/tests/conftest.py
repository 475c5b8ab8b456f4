"""
Global test fixtures for CLIP Desktop tests
"""
import os
import shutil
import tempfile

# config creates its data directory on import; keep it out of the home dir
os.environ.setdefault("CLIP_DATA_DIR", tempfile.mkdtemp(prefix="clip_data_"))

import asyncio
from pathlib import Path
from typing import Generator

import httpx
import pytest

from activity.log import ContentLog
from api.app import build_app
from api.control import init_control, require_local_client
from api.routes import init_routes
from api.websocket import ConnectionManager
from confirmation.gate import ConfirmationGate
from content.clip_service import ClipService
from discovery.service import DiscoveryService
from relay.session import RelaySessionManager
from settings import SettingsManager

RELAY_TIMEOUT = 0.5
CONFIRMATION_TIMEOUT = 0.3


class FakeClock:
    """Manually advanced replacement for time.time"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """Stands in for the UDP transport; remembers what was sent"""

    def __init__(self):
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self.closed = False

    def sendto(self, data: bytes, addr: tuple[str, int]) -> None:
        self.sent.append((data, addr))

    def close(self) -> None:
        self.closed = True


class EventRecorder:
    """Async event sink collecting (event, data) pairs"""

    def __init__(self):
        self.events: list[tuple[str, object]] = []

    async def __call__(self, event_type: str, data) -> None:
        self.events.append((event_type, data))

    def of(self, event_type: str) -> list:
        return [data for name, data in self.events if name == event_type]


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files"""
    path = Path(tempfile.mkdtemp(prefix="clip_test_"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def settings_manager(temp_dir: Path) -> SettingsManager:
    manager = SettingsManager(temp_dir / "settings.json")
    manager.load("192.168.1.20", 5050)
    return manager


@pytest.fixture
def content_log() -> ContentLog:
    return ContentLog()


@pytest.fixture
def clipboard() -> list[str]:
    return []


@pytest.fixture
def opened_links() -> list[str]:
    return []


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def relay(events: EventRecorder) -> RelaySessionManager:
    manager = RelaySessionManager(timeout=RELAY_TIMEOUT, base_url="http://192.168.1.20:5050")
    manager.on_event(events)
    return manager


@pytest.fixture
def gate(events: EventRecorder) -> ConfirmationGate:
    confirmation_gate = ConfirmationGate(timeout=CONFIRMATION_TIMEOUT, relay_timeout=RELAY_TIMEOUT)
    confirmation_gate.on_event(events)
    return confirmation_gate


@pytest.fixture
def clip_service(settings_manager, content_log, temp_dir, clipboard, opened_links, events) -> ClipService:
    service = ClipService(
        settings_manager,
        content_log,
        uploads_dir=temp_dir / "uploads",
        clipboard=clipboard.append,
        open_link=opened_links.append,
    )
    service.on_event(events)
    return service


@pytest.fixture
def make_discovery(settings_manager, clock, transport):
    """Factory for discovery services sharing the fake clock and transport"""

    def factory(identity: str = "node-self", manager: SettingsManager | None = None) -> DiscoveryService:
        async def open_transport(service):
            return transport

        return DiscoveryService(
            manager or settings_manager,
            identity=identity,
            discovery_port=41234,
            interval=5,
            freshness_window=10,
            clock=clock,
            transport_factory=open_transport,
            broadcast_targets=lambda: {"255.255.255.255"},
        )

    return factory


@pytest.fixture
def discovery(make_discovery) -> DiscoveryService:
    return make_discovery()


@pytest.fixture
def peer_handler():
    """Replaceable handler for outbound requests to other CLIP nodes"""
    state = {"handler": lambda request: httpx.Response(200, json={"success": True})}

    def dispatch(request: httpx.Request) -> httpx.Response:
        return state["handler"](request)

    dispatch.state = state
    return dispatch


@pytest.fixture
def app(discovery, relay, gate, clip_service, settings_manager, content_log, temp_dir, events, peer_handler):
    init_routes(
        relay, gate, clip_service, settings_manager, content_log,
        storage_root=temp_dir, notify=events,
    )
    init_control(
        discovery, relay, gate, clip_service, settings_manager, content_log,
        storage_root=temp_dir, peer_transport=httpx.MockTransport(peer_handler),
    )
    application = build_app(ConnectionManager())
    application.dependency_overrides[require_local_client] = lambda: None
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def wait_until():
    """Poll a predicate from inside a test without blocking the loop"""
    return _wait_until
