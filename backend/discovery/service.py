"""
UDP-based LAN discovery service.

Broadcasts a periodic announcement and listens for announcements from other
CLIP nodes on the same LAN. Peer freshness is evaluated when the catalog is
read; there are no per-peer timers.
"""

import asyncio
import contextlib
import logging
import socket
import time
from typing import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from config import (
    ADVERTISE_INTERVAL,
    APP_ID,
    DEVICE_ID,
    DISCOVERY_PORT,
    FRESHNESS_WINDOW,
)
from discovery.models import Announcement, PeerNode
from discovery.network import broadcast_addresses
from errors import NetworkError
from settings import DiscoverySettings, SettingsManager

logger = logging.getLogger(__name__)

# Peers stale for this many freshness windows are dropped from memory
PRUNE_FACTOR = 10


class DiscoveryProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol for receiving peer announcements."""

    def __init__(self, service: "DiscoveryService"):
        self.service = service

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            announcement = Announcement.model_validate_json(data)
        except (PydanticValidationError, UnicodeDecodeError) as e:
            logger.debug(f"Ignoring invalid discovery packet from {addr}: {e}")
            return
        self.service.handle_announcement(announcement, addr[0])

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")


TransportFactory = Callable[["DiscoveryService"], Awaitable[asyncio.DatagramTransport]]


class DiscoveryService:
    """Advertises this node and keeps a freshness-bounded catalog of peers."""

    def __init__(
        self,
        settings_manager: SettingsManager,
        identity: str = DEVICE_ID,
        discovery_port: int = DISCOVERY_PORT,
        interval: float = ADVERTISE_INTERVAL,
        freshness_window: float = FRESHNESS_WINDOW,
        clock: Callable[[], float] = time.time,
        transport_factory: TransportFactory | None = None,
        broadcast_targets: Callable[[], set[str]] = broadcast_addresses,
    ) -> None:
        self._settings = settings_manager
        self._identity = identity
        self._discovery_port = discovery_port
        self._interval = interval
        self._freshness_window = freshness_window
        self._clock = clock
        self._transport_factory = transport_factory or _open_udp_transport
        self._broadcast_targets = broadcast_targets

        self._peers: dict[str, PeerNode] = {}
        self._transport: asyncio.DatagramTransport | None = None
        self._advertise_task: asyncio.Task | None = None
        self._on_peer_change: list = []  # callbacks: async def fn(event, peers)
        self._notify_tasks: set[asyncio.Task] = set()

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def discovery_port(self) -> int:
        return self._discovery_port

    @property
    def is_discoverable(self) -> bool:
        return self._settings.settings.isDiscoverable

    @property
    def is_running(self) -> bool:
        return self._advertise_task is not None

    def on_peer_change(self, callback) -> None:
        """Register a callback for ``servers-updated`` events."""
        self._on_peer_change.append(callback)

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start listening and advertising. A failed bind is retried each tick."""
        if self._advertise_task is not None:
            return
        logger.info(f"Starting discovery on UDP port {self._discovery_port}")
        try:
            await self._ensure_transport()
        except NetworkError as e:
            logger.warning(f"{e.message}; will retry")
        self._advertise_task = asyncio.create_task(self._advertise_loop())
        logger.info("Discovery service started")

    async def stop(self) -> None:
        """Stop advertising and listening. Safe to call repeatedly."""
        task, self._advertise_task = self._advertise_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
            logger.info("Discovery service stopped")

    async def _ensure_transport(self) -> asyncio.DatagramTransport:
        if self._transport is None:
            self._transport = await self._transport_factory(self)
        return self._transport

    # --- Advertisement ---

    def build_announcement(self) -> Announcement | None:
        """Our own announcement, or None while we are not discoverable."""
        if not self.is_discoverable:
            return None
        settings = self._settings.settings
        return Announcement(
            service=APP_ID,
            deviceName=settings.deviceName,
            port=settings.serverPort,
            identity=self._identity,
            timestamp=self._clock(),
        )

    async def advertise_once(self) -> int:
        """Send one announcement to every broadcast target; returns the send count."""
        announcement = self.build_announcement()
        if announcement is None:
            return 0

        transport = await self._ensure_transport()
        data = announcement.model_dump_json().encode("utf-8")
        sent = 0
        errors = []
        for target in self._broadcast_targets():
            try:
                transport.sendto(data, (target, self._discovery_port))
                sent += 1
            except OSError as e:
                # Some interfaces might not support broadcast
                errors.append(f"{target}: {e}")
        if not sent and errors:
            raise NetworkError(f"Announcement failed: {'; '.join(errors)}")
        return sent

    async def _advertise_loop(self) -> None:
        """Periodically rebind the listener if needed and announce ourselves."""
        while True:
            try:
                # Listening does not depend on discoverability
                await self._ensure_transport()
                await self.advertise_once()
            except NetworkError as e:
                logger.warning(f"Discovery tick failed: {e.message}")
            await asyncio.sleep(self._interval)

    # --- Catalog ---

    def _is_fresh(self, peer: PeerNode, now: float) -> bool:
        return now - peer.lastSeen < self._freshness_window

    def handle_announcement(self, announcement: Announcement, ip: str) -> bool:
        """Upsert the announcing peer; returns False if the packet was ignored."""
        if announcement.service != APP_ID:
            return False
        if announcement.identity == self._identity:
            return False

        now = self._clock()
        previous = self._peers.get(announcement.identity)
        became_fresh = previous is None or not self._is_fresh(previous, now)

        self._peers[announcement.identity] = PeerNode(
            id=announcement.identity,
            ip=ip,
            port=announcement.port,
            deviceName=announcement.deviceName,
            lastSeen=now,
        )
        self._prune(now)

        if became_fresh:
            logger.info(f"Discovered peer: {announcement.deviceName} ({ip}:{announcement.port})")
            self._notify()
        return True

    def _prune(self, now: float) -> None:
        horizon = self._freshness_window * PRUNE_FACTOR
        for peer_id in [p.id for p in self._peers.values() if now - p.lastSeen > horizon]:
            del self._peers[peer_id]

    def _notify(self) -> None:
        if not self._on_peer_change:
            return
        servers = [p.model_dump() for p in self.get_active_servers()]
        for cb in self._on_peer_change:
            task = asyncio.ensure_future(cb("servers-updated", servers))
            self._notify_tasks.add(task)
            task.add_done_callback(self._notify_done)

    def _notify_done(self, task: asyncio.Task) -> None:
        self._notify_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Peer change callback error: {task.exception()}")

    def get_active_servers(self) -> list[PeerNode]:
        """Return the peers seen within the freshness window."""
        now = self._clock()
        return [p for p in self._peers.values() if self._is_fresh(p, now)]

    def get_server(self, peer_id: str) -> PeerNode | None:
        peer = self._peers.get(peer_id)
        if peer is None or not self._is_fresh(peer, self._clock()):
            return None
        return peer

    # --- Settings ---

    def get_settings(self) -> DiscoverySettings:
        s = self._settings.settings
        return DiscoverySettings(
            isDiscoverable=s.isDiscoverable,
            serverIp=s.serverIp,
            serverPort=s.serverPort,
        )

    async def set_discoverable(self, discoverable: bool) -> None:
        """Toggle our own announcements; listening is unaffected."""
        await self._settings.update(isDiscoverable=discoverable)
        logger.info(f"Discoverable: {discoverable}")

    async def update_settings(
        self,
        is_discoverable: bool | None = None,
        server_ip: str | None = None,
        server_port: int | None = None,
    ) -> DiscoverySettings:
        await self._settings.update(
            isDiscoverable=is_discoverable, serverIp=server_ip, serverPort=server_port
        )
        return self.get_settings()


async def _open_udp_transport(service: DiscoveryService) -> asyncio.DatagramTransport:
    """Bind the shared discovery port for both sending and receiving."""
    loop = asyncio.get_running_loop()
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        # SO_REUSEADDR before binding so multiple instances can share the port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.setblocking(False)
        sock.bind(("0.0.0.0", service.discovery_port))
        transport, _ = await loop.create_datagram_endpoint(
            lambda: DiscoveryProtocol(service),
            sock=sock,
        )
    except OSError as e:
        sock.close()
        raise NetworkError(f"Could not open discovery socket: {e}") from e
    return transport
