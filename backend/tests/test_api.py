"""
Scenario tests for the peer-facing HTTP API (api/routes.py)
"""
import asyncio
import base64

from content.models import FilePayload
from relay.models import SessionState


async def test_liveness(client):
    response = await client.get("/api")
    assert response.status_code == 200
    assert response.json() == {"success": True}


class TestLongPoll:
    async def test_poll_is_answered_by_content(self, client, relay, wait_until):
        poll = asyncio.ensure_future(client.get("/api/poll"))
        await wait_until(lambda: relay.state is SessionState.AWAITING)

        sent = await client.post("/api/content", json={"content": "hello"})
        assert sent.status_code == 200
        assert sent.json() == {"success": True}

        response = await poll
        assert response.status_code == 200
        assert response.json() == {"content": "hello"}

        again = await client.post("/api/content", json={"content": "hello"})
        assert again.status_code == 400
        assert again.json() == {"success": False, "message": "No current session found"}

    async def test_poll_times_out(self, client, relay):
        response = await asyncio.wait_for(client.get("/api/poll"), timeout=relay.timeout + 1)
        assert response.status_code == 400
        assert response.json() == {"success": False}

    async def test_second_poll_is_rejected(self, client, relay, wait_until):
        first = asyncio.ensure_future(client.get("/api/poll"))
        await wait_until(lambda: relay.state is SessionState.AWAITING)

        second = await client.get("/api/poll")
        assert second.status_code == 409
        assert second.json()["success"] is False

        await client.post("/api/content", json={"content": "still yours"})
        assert (await first).json() == {"content": "still yours"}

    async def test_youtube_link_carries_scheme(self, client, relay, wait_until):
        poll = asyncio.ensure_future(client.get("/api/poll"))
        await wait_until(lambda: relay.state is SessionState.AWAITING)
        await client.post("/api/content", json={"content": "https://youtu.be/x"})
        assert (await poll).json() == {
            "content": "https://youtu.be/x",
            "urlScheme": "youtube://youtu.be/x",
        }

    async def test_shutdown_releases_poll(self, client, relay, wait_until):
        poll = asyncio.ensure_future(client.get("/api/poll"))
        await wait_until(lambda: relay.state is SessionState.AWAITING)
        relay.cancel("Server shutting down")
        response = await poll
        assert response.status_code == 503
        assert response.json() == {"success": False, "message": "Server shutting down"}

    async def test_relayed_file_is_served(self, client, relay, temp_dir, wait_until):
        poll = asyncio.ensure_future(client.get("/api/poll"))
        await wait_until(lambda: relay.state is SessionState.AWAITING)
        await relay.deliver_file(
            FilePayload(name="notes.txt", type="text/plain", data=base64.b64encode(b"hi there").decode()),
            temp_dir,
        )
        reply = (await poll).json()
        assert reply["fileName"] == "notes.txt"
        assert reply["fileSize"] == 8

        served = await client.get("/api/files/notes.txt")
        assert served.status_code == 200
        assert served.content == b"hi there"

    async def test_missing_file_is_404(self, client):
        response = await client.get("/api/files/nothing.txt")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "File not found"}

    async def test_empty_content_is_rejected(self, client):
        response = await client.post("/api/content", json={"content": ""})
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestInboundText:
    async def test_accepted_text_reaches_clipboard(self, client, gate, clipboard, wait_until):
        async def accept():
            await wait_until(lambda: gate.pending())
            gate.respond_to_confirmation(gate.pending()[0].id, True)

        response, _ = await asyncio.gather(
            client.post("/api/text", json={"content": "https://www.reddit.com/r/test", "device_name": "Phone"}),
            accept(),
        )
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Content accepted",
            "urlScheme": "reddit://www.reddit.com/r/test",
        }
        assert clipboard == ["https://www.reddit.com/r/test"]

    async def test_declined_text_is_not_applied(self, client, gate, clipboard, content_log, wait_until):
        async def decline():
            await wait_until(lambda: gate.pending())
            gate.respond_to_confirmation(gate.pending()[0].id, False)

        response, _ = await asyncio.gather(
            client.post("/api/text", json={"content": "spam", "device_name": "Stranger"}),
            decline(),
        )
        assert response.json() == {"success": False, "message": "Content declined by user"}
        assert clipboard == []
        entry = content_log.entries()[0]
        assert entry.direction.value == "declined"
        assert entry.device_name == "Stranger"

    async def test_unanswered_confirmation_is_rejected(self, client, clipboard):
        response = await client.post("/api/text", json={"content": "hello"})
        assert response.status_code == 200
        assert response.json() == {"success": False, "message": "Confirmation timeout or error"}
        assert clipboard == []

    async def test_without_confirmation(self, client, settings_manager, clipboard):
        await settings_manager.update(requireConfirmation=False)
        response = await client.post("/api/text", json={"content": "hello"})
        assert response.json() == {"success": True, "message": "Content accepted"}
        assert clipboard == ["hello"]

    async def test_malformed_payload(self, client):
        response = await client.post("/api/text", json={"device_name": "Phone"})
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestImageUpload:
    async def test_upload_saved(self, client, settings_manager, temp_dir):
        await settings_manager.update(requireConfirmation=False)
        response = await client.post(
            "/api/image",
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
            data={"device_name": "Phone"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert (temp_dir / "uploads" / "photo.png").read_bytes() == b"\x89PNG"

    async def test_no_file(self, client):
        response = await client.post("/api/image", data={"device_name": "Phone"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_declined_upload_not_saved(self, client, gate, temp_dir, wait_until):
        async def decline():
            await wait_until(lambda: gate.pending())
            gate.respond_to_confirmation(gate.pending()[0].id, False)

        response, _ = await asyncio.gather(
            client.post("/api/image", files={"file": ("photo.png", b"\x89PNG", "image/png")}),
            decline(),
        )
        assert response.json()["success"] is False
        assert not (temp_dir / "uploads" / "photo.png").exists()


async def test_client_open_notifies_ui(client, events):
    response = await client.post("/api/client", json={"device_name": "Pixel"})
    assert response.status_code == 200
    assert events.of("client-opened") == [{"deviceName": "Pixel"}]


async def test_client_open_without_body(client, events):
    response = await client.post("/api/client")
    assert response.status_code == 200
    assert events.of("client-opened") == [{"deviceName": "Unnamed device"}]
