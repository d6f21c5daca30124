"""
Quake II UDP master server client

Protocol: UDP
Port: 27900 (default)

Query Flow:
1. Client sends OOB "getservers quake2 34"
2. Master answers with one or more OOB packets holding 6-byte address
   records (4-byte IPv4 + big-endian port)
3. The list ends with an empty OOB payload or one starting with EOT (0x04),
   or when the client gives up after MASTER_QUERY_TIMEOUT seconds
"""

import asyncio
import logging
import socket
from typing import List, Optional

from q2browser.models import Endpoint
from q2browser.networking.udp import open_udp_endpoint, race
from q2browser.protocol.byte_reader import parse_address_records
from q2browser.protocol.packet import build_oob_command, has_oob_header, remove_oob_header

MASTER_QUERY = 'getservers quake2 34'
MASTER_QUERY_TIMEOUT = 5  # seconds

# End-of-list marker
EOT = 0x04


class MasterServerClient:
    """
    UDP master server client.

    Never raises for network conditions: DNS failures, socket errors,
    timeouts and cancellation all end the query with whatever addresses
    were collected so far.
    """

    def __init__(self, config, logger: logging.Logger = None):
        """
        Initialize master server client.

        Args:
            config: Configuration with MASTER_HOST and MASTER_PORT
            logger: Optional logger overriding the module logger
        """
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def _resolve(self, host: str) -> Optional[str]:
        """Resolve ``host`` to its first IPv4 address, or None."""
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_DGRAM)
        except (socket.gaierror, OSError, UnicodeError) as e:
            self.logger.error(f"[MASTER] Failed to resolve master server address {host}: {e}")
            return None

        if not infos:
            self.logger.error(f"[MASTER] No IPv4 address for master server {host}")
            return None

        self.logger.debug(f"[MASTER] Resolved {host} to {len(infos)} address(es)")
        return infos[0][4][0]

    async def query_servers(self, cancel_event: asyncio.Event = None) -> List[Endpoint]:
        """
        Fetch the server list from the master server.

        Args:
            cancel_event: Optional event that stops the query when set

        Returns:
            List of server endpoints (possibly empty)
        """
        host, port = self.config.MASTER_HOST, self.config.MASTER_PORT
        self.logger.info(f"[MASTER] Querying UDP master server: {host}:{port}")

        address = await self._resolve(host)
        if address is None:
            return []

        received = bytearray()
        packet_count = 0

        try:
            async with open_udp_endpoint() as udp:
                packet = build_oob_command(MASTER_QUERY)
                udp.send(packet, (address, port))
                self.logger.debug(f"[MASTER] Sent query ({len(packet)} bytes) to {address}:{port}")

                received, packet_count = await self._receive_list(udp, cancel_event)

        except OSError as e:
            self.logger.warning(f"[MASTER] Socket error talking to {address}:{port}: {e}")
        except Exception as e:
            self.logger.error(f"[MASTER] Error querying master server: {e}", exc_info=True)

        self.logger.info(f"[MASTER] Received {packet_count} packet(s), total data: {len(received)} bytes")

        servers = parse_address_records(received)
        self.logger.info(f"[MASTER] Master server query complete. Found {len(servers)} server(s)")
        return servers

    async def _receive_list(self, udp, cancel_event: Optional[asyncio.Event]):
        """
        Collect address-list payloads until the end marker, deadline or cancel.

        Returns:
            (accumulated payload bytes, number of packets received)
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + MASTER_QUERY_TIMEOUT

        received = bytearray()
        packet_count = 0

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning("[MASTER] Timeout waiting for master server response")
                break

            try:
                result = await race(udp.receive(), timeout=remaining, cancel_event=cancel_event)
            except OSError as e:
                self.logger.warning(f"[MASTER] Socket error while receiving: {e}")
                break

            if result.timed_out:
                self.logger.warning("[MASTER] Timeout waiting for master server response")
                break
            if result.cancelled:
                self.logger.info("[MASTER] Master server query cancelled")
                break

            data, addr = result.value
            packet_count += 1
            self.logger.debug(f"[MASTER] Received packet #{packet_count} ({len(data)} bytes) from {addr[0]}:{addr[1]}")

            if not has_oob_header(data):
                self.logger.warning("[MASTER] Received packet without OOB header, ignoring")
                continue

            payload = remove_oob_header(data)
            if not payload or payload[0] == EOT:
                self.logger.debug("[MASTER] Received end marker, stopping reception")
                break

            received.extend(payload)
            self.logger.debug(f"[MASTER] Added {len(payload)} bytes to buffer (total: {len(received)} bytes)")

        return received, packet_count
