"""
Unit tests for the UI WebSocket fan-out - event filtering and dead sockets
"""
import json

from api.websocket import ConnectionManager


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.accepted = False
        self.broken = broken
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.broken:
            raise RuntimeError("socket closed")
        self.messages.append(json.loads(text))


class TestConnectionManager:
    async def test_known_event_reaches_every_ui(self):
        manager = ConnectionManager()
        first, second = FakeSocket(), FakeSocket()
        await manager.connect(first)
        await manager.connect(second)

        await manager.handle_event("text-received", {"content": "hi"})

        assert first.accepted and second.accepted
        assert first.messages == second.messages == [{"event": "text-received", "data": {"content": "hi"}}]

    async def test_unknown_event_is_dropped(self):
        manager = ConnectionManager()
        ui = FakeSocket()
        await manager.connect(ui)
        await manager.handle_event("transfer-progress", {})
        assert ui.messages == []

    async def test_failing_socket_is_removed(self):
        manager = ConnectionManager()
        healthy, broken = FakeSocket(), FakeSocket(broken=True)
        await manager.connect(healthy)
        await manager.connect(broken)

        await manager.broadcast("client-opened", {"deviceName": "Pixel"})

        assert manager.connection_count == 1
        assert healthy.messages[0]["event"] == "client-opened"

    async def test_disconnect_is_idempotent(self):
        manager = ConnectionManager()
        ui = FakeSocket()
        await manager.connect(ui)
        await manager.disconnect(ui)
        await manager.disconnect(ui)
        assert manager.connection_count == 0
