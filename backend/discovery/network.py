"""Local address helpers for discovery."""

import logging
import socket

logger = logging.getLogger(__name__)


def get_server_ip() -> str:
    """Return the address of the interface used for the default route."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # Doesn't actually send anything, just picks the outbound interface
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def broadcast_addresses() -> set[str]:
    """Limited broadcast plus a /24 directed broadcast per local address."""
    addresses = {"255.255.255.255"}
    ips = {get_server_ip()}
    try:
        _, _, host_ips = socket.gethostbyname_ex(socket.gethostname())
        ips.update(host_ips)
    except OSError as e:
        logger.debug(f"Error resolving local IPs: {e}")

    for ip in ips:
        parts = ip.split(".")
        if len(parts) == 4 and not ip.startswith("127."):
            # Simple heuristic for /24 subnets
            parts[3] = "255"
            addresses.add(".".join(parts))
    return addresses
