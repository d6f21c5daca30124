"""
Game server status probe

Sends an OOB "status" query to each server and parses the reply into a
ServerEntry. Any number of probes may be started at once; a semaphore
sized to MAX_CONCURRENT_PROBES caps how many UDP exchanges are actually in
flight.
"""

import asyncio
import inspect
import logging
import time
from typing import Callable, Iterable, List, Optional

from q2browser.errors import ProbeEngineClosedError
from q2browser.models import Endpoint, ServerEntry
from q2browser.networking.udp import open_udp_endpoint, race
from q2browser.protocol.packet import build_oob_command, has_oob_header, remove_oob_header
from q2browser.protocol.status_parser import parse_status_response

STATUS_QUERY = build_oob_command('status')

# Log progress every N completed probes
PROGRESS_INTERVAL = 10


class GameServerProbe:
    """
    Bounded-concurrency status prober.

    Attributes:
        max_concurrent: Size of the permit pool
        timeout_ms: Per-probe receive timeout
        in_flight: Probes currently holding a permit
        peak_in_flight: Highest in_flight value seen
    """

    def __init__(self, config, logger: logging.Logger = None):
        """
        Initialize probe engine.

        Args:
            config: Configuration with MAX_CONCURRENT_PROBES and PROBE_TIMEOUT_MS
            logger: Optional logger overriding the module logger
        """
        self.config = config
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        self.max_concurrent = config.MAX_CONCURRENT_PROBES
        self.timeout_ms = config.PROBE_TIMEOUT_MS

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self.in_flight = 0
        self.peak_in_flight = 0
        self._closed = False

    @property
    def available_permits(self) -> int:
        # asyncio.Semaphore has no public counter
        return self._semaphore._value

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Reject any further probes."""
        self._closed = True

    def _check_open(self):
        if self._closed:
            raise ProbeEngineClosedError()

    # =========================================================================
    # Single probe
    # =========================================================================

    async def probe_server(self, endpoint: Endpoint,
                           cancel_event: asyncio.Event = None) -> Optional[ServerEntry]:
        """
        Query one server for its status.

        Waits for a free permit first. The permit is released however the
        probe ends.

        Args:
            endpoint: Server to query
            cancel_event: Optional event that aborts the wait/probe when set

        Returns:
            ServerEntry, or None on timeout, cancellation or a bad reply

        Raises:
            ProbeEngineClosedError: If the engine has been closed
        """
        self._check_open()

        acquire = asyncio.ensure_future(self._semaphore.acquire())
        try:
            acquired = await race(acquire, cancel_event=cancel_event)
        except asyncio.CancelledError:
            acquire.add_done_callback(self._release_if_granted)
            raise

        if not acquired.completed:
            self.logger.debug(f"[PROBE] Probe for server {endpoint} was cancelled before starting")
            return None

        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            return await self._probe(Endpoint(*endpoint), cancel_event)
        finally:
            self.in_flight -= 1
            self._semaphore.release()

    def _release_if_granted(self, acquire: asyncio.Future):
        if not acquire.cancelled() and acquire.exception() is None:
            self._semaphore.release()

    async def _probe(self, endpoint: Endpoint,
                     cancel_event: Optional[asyncio.Event]) -> Optional[ServerEntry]:
        try:
            async with open_udp_endpoint() as udp:
                start = time.perf_counter()
                udp.send(STATUS_QUERY, endpoint)
                self.logger.debug(f"[PROBE] Probing server {endpoint}")

                result = await race(udp.receive(), timeout=self.timeout_ms / 1000, cancel_event=cancel_event)

                if result.timed_out:
                    self.logger.debug(f"[PROBE] Probe for server {endpoint} timed out after {self.timeout_ms}ms")
                    return None
                if result.cancelled:
                    self.logger.debug(f"[PROBE] Probe for server {endpoint} was cancelled")
                    return None

                elapsed = int((time.perf_counter() - start) * 1000)
                data, _ = result.value

        except OSError as e:
            self.logger.debug(f"[PROBE] Server {endpoint} did not respond: {e}")
            return None
        except Exception as e:
            self.logger.warning(f"[PROBE] Error probing server {endpoint}: {e}")
            return None

        if not has_oob_header(data):
            self.logger.warning(f"[PROBE] Server {endpoint} responded without OOB header")
            return None

        payload = remove_oob_header(data)
        response = payload.decode('latin-1')
        self.logger.debug(f"[PROBE] Server {endpoint} responded in {elapsed}ms ({len(payload)} bytes)")
        self.logger.debug(f"[PROBE] Response preview: {response[:200]!r}")

        try:
            status = parse_status_response(response)
            entry = ServerEntry(
                address=endpoint.address,
                port=endpoint.port,
                ping=elapsed,
                cvars=status.cvars,
                players=status.players,
            )
        except Exception as e:
            self.logger.warning(f"[PROBE] Failed to parse response from server {endpoint}: {e}", exc_info=True)
            return None

        self.logger.debug(
            f"[PROBE] Parsed server {endpoint}: {entry.hostname} "
            f"({entry.current_players}/{entry.max_clients} players)"
        )
        return entry

    # =========================================================================
    # Batch probe
    # =========================================================================

    async def probe_servers(self, endpoints: Iterable[Endpoint],
                            sink: Callable[[ServerEntry], object] = None,
                            cancel_event: asyncio.Event = None) -> List[ServerEntry]:
        """
        Probe many servers concurrently.

        Every probe is started immediately; the permit pool limits how many
        run at once. Each successful entry is handed to ``sink`` as soon as
        it arrives, so results are delivered progressively and out of order.

        Args:
            endpoints: Servers to query
            sink: Optional callback (plain or async) receiving each ServerEntry
            cancel_event: Optional event that aborts all outstanding probes

        Returns:
            Entries for the servers that answered, in completion order

        Raises:
            ProbeEngineClosedError: If the engine has been closed
        """
        self._check_open()

        endpoint_list = list(endpoints)
        total = len(endpoint_list)
        self.logger.info(f"[PROBE] Starting to probe {total} server(s) (max concurrent: {self.max_concurrent})")

        results = []
        completed = 0

        async def probe_and_report(endpoint):
            nonlocal completed

            entry = await self.probe_server(endpoint, cancel_event)
            completed += 1

            if entry is not None:
                results.append(entry)
                await self._report(sink, entry)

            if completed % PROGRESS_INTERVAL == 0 or completed == total:
                self.logger.info(f"[PROBE] Probing progress: {completed}/{total} completed, {len(results)} successful")

        await asyncio.gather(*(probe_and_report(endpoint) for endpoint in endpoint_list))

        self.logger.info(f"[PROBE] Probing complete: {len(results)}/{total} servers responded")
        return results

    async def _report(self, sink, entry: ServerEntry):
        if sink is None:
            return
        try:
            outcome = sink(entry)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self.logger.error(f"[PROBE] Result sink failed for {entry.full_address}: {e}", exc_info=True)
