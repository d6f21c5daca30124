"""
LAN server discovery

Broadcasts an OOB "status" query to the game server port and records every
distinct address that answers within LAN_DISCOVERY_WINDOW seconds. Reply
contents are ignored here; the probe engine queries each server properly.
"""

import asyncio
import logging
from typing import List

from q2browser.models import Endpoint
from q2browser.networking.udp import open_udp_endpoint, race
from q2browser.protocol.packet import build_oob_command

LAN_DISCOVERY_WINDOW = 3  # seconds


class LanBroadcastClient:
    """LAN broadcast discovery client"""

    def __init__(self, config, logger: logging.Logger = None):
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    async def discover_servers(self, cancel_event: asyncio.Event = None) -> List[Endpoint]:
        """
        Discover servers on the local network.

        Args:
            cancel_event: Optional event that ends the collection window early

        Returns:
            Responding endpoints in order of first reply
        """
        if not self.config.ENABLE_LAN_BROADCAST:
            return []

        servers = []
        discovered = set()
        target = (self.config.LAN_BROADCAST_ADDRESS, self.config.LAN_SERVER_PORT)

        try:
            self.logger.info("[LAN] Starting LAN broadcast discovery...")

            async with open_udp_endpoint(allow_broadcast=True) as udp:
                self.logger.debug(f"[LAN] Sending broadcast to {target[0]}:{target[1]}")
                udp.send(build_oob_command('status'), target)

                loop = asyncio.get_running_loop()
                deadline = loop.time() + LAN_DISCOVERY_WINDOW

                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break

                    try:
                        result = await race(udp.receive(), timeout=remaining, cancel_event=cancel_event)
                    except OSError as e:
                        self.logger.debug(f"[LAN] Socket error during discovery: {e}")
                        break

                    if result.timed_out:
                        break
                    if result.cancelled:
                        self.logger.info("[LAN] LAN discovery cancelled")
                        break

                    _, (host, port) = result.value
                    endpoint = Endpoint(host, port)
                    if str(endpoint) in discovered:
                        continue

                    discovered.add(str(endpoint))
                    servers.append(endpoint)
                    self.logger.debug(f"[LAN] Discovered LAN server: {endpoint}")

            self.logger.info(f"[LAN] LAN broadcast discovered {len(servers)} server(s)")

        except Exception as e:
            self.logger.error(f"[LAN] Error during LAN broadcast: {e}", exc_info=True)

        return servers
