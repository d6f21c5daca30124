"""
Main entry point for the Quake II server browser

Runs one refresh cycle:
- HTTP master server (when enabled) or UDP master server
- LAN broadcast discovery (when enabled)
- Status probe of every distinct address, printing results as they arrive
"""

import asyncio
import logging
import signal
import sys
from typing import Callable, Iterable, List

from q2browser.config import config
from q2browser.models import Endpoint, ServerEntry
from q2browser.networking.http_master import HttpMasterServerClient
from q2browser.networking.lan_broadcast import LanBroadcastClient
from q2browser.networking.master_server import MasterServerClient
from q2browser.networking.probe import GameServerProbe

logger = logging.getLogger(__name__)


def deduplicate(endpoints: Iterable[Endpoint]) -> List[Endpoint]:
    """Drop repeated "address:port" entries, keeping first-seen order."""
    seen = set()
    unique = []
    for endpoint in endpoints:
        key = str(endpoint)
        if key in seen:
            continue
        seen.add(key)
        unique.append(endpoint)
    return unique


class ServerBrowserManager:
    """Runs discovery and probing for one refresh at a time"""

    def __init__(self, config, logger: logging.Logger = None):
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        self.master_client = MasterServerClient(config, self.logger)
        self.http_client = HttpMasterServerClient(config, self.logger)
        self.lan_client = LanBroadcastClient(config, self.logger)
        self.probe = GameServerProbe(config, self.logger)

        self.favorites = set(config.FAVORITES)
        self.cancel_event = None
        self.refreshing = False

    async def discover(self, cancel_event: asyncio.Event = None) -> List[Endpoint]:
        """Collect candidate endpoints from every enabled source."""
        endpoints = []

        if self.config.USE_HTTP_MASTER and self.config.HTTP_MASTER_URL:
            self.logger.info("Querying HTTP master server...")
            http_servers = await self.http_client.query_servers(cancel_event)
            endpoints.extend(http_servers)
            self.logger.info(f"HTTP master server returned {len(http_servers)} server(s)")

        if not self.config.USE_HTTP_MASTER:
            self.logger.info("Querying UDP master server...")
            udp_servers = await self.master_client.query_servers(cancel_event)
            endpoints.extend(udp_servers)
            self.logger.info(f"UDP master server returned {len(udp_servers)} server(s)")

        if self.config.ENABLE_LAN_BROADCAST:
            self.logger.info("Discovering LAN servers...")
            lan_servers = await self.lan_client.discover_servers(cancel_event)
            endpoints.extend(lan_servers)
            self.logger.info(f"LAN broadcast discovered {len(lan_servers)} server(s)")

        return deduplicate(endpoints)

    async def refresh(self, sink: Callable[[ServerEntry], object] = None,
                      cancel_event: asyncio.Event = None) -> List[ServerEntry]:
        """
        Discover and probe all servers.

        A refresh already in progress is cancelled first.

        Args:
            sink: Optional callback receiving each ServerEntry as it arrives
            cancel_event: Optional event to use instead of a fresh one

        Returns:
            Entries for every server that answered
        """
        self.cancel()
        if cancel_event is None:
            cancel_event = asyncio.Event()
        self.cancel_event = cancel_event
        self.refreshing = True

        self.logger.info("=== Starting server refresh ===")
        try:
            endpoints = await self.discover(cancel_event)
            self.logger.info(f"Found {len(endpoints)} servers. Probing...")

            def mark_and_forward(entry: ServerEntry):
                entry.is_favorite = entry.full_address in self.favorites
                if sink is not None:
                    return sink(entry)

            entries = await self.probe.probe_servers(endpoints, mark_and_forward, cancel_event)

            if cancel_event.is_set():
                self.logger.info("Refresh cancelled")
            else:
                self.logger.info(f"Found {len(entries)} active servers")
            return entries
        finally:
            self.refreshing = False

    def cancel(self):
        """Cancel the refresh in progress, if any."""
        if self.cancel_event is not None:
            self.cancel_event.set()

    def close(self):
        self.cancel()
        self.probe.close()


def format_entry(entry: ServerEntry) -> str:
    favorite = '*' if entry.is_favorite else ' '
    ping = f"{entry.ping}ms" if entry.ping is not None else '-'
    return (
        f"{favorite} {entry.full_address:<21} {ping:>6}  "
        f"{entry.current_players:>2}/{entry.max_clients:<2}  "
        f"{entry.map:<12} {entry.mod:<10} {entry.display_hostname}"
    )


async def main():
    """Main entry point"""

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    manager = ServerBrowserManager(config)

    # Ctrl+C / SIGTERM cancel the refresh instead of killing the loop
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, manager.cancel)
        except NotImplementedError:
            pass  # Windows

    print("\n" + "=" * 70)
    print("Quake II Server Browser")
    print("=" * 70)
    print(f"   {config!r}")
    print()

    try:
        entries = await manager.refresh(
            lambda entry: logger.debug(f"Server answered: {entry.full_address}")
        )
    finally:
        manager.close()

    print(f"  {'Address':<21} {'Ping':>6}  {'Pl':>5}  {'Map':<12} {'Mod':<10} Hostname")
    print("-" * 70)
    for entry in sorted(entries, key=lambda e: (e.ping is None, e.ping)):
        print(format_entry(entry))
    print("-" * 70)
    print(f"{len(entries)} server(s) responded")

    return 0


def run():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == '__main__':
    run()
