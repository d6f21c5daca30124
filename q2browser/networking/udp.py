"""
UDP plumbing shared by the discovery clients and the probe engine

Each query opens its own datagram endpoint for the lifetime of one call.
Received datagrams are queued by the protocol and pulled with
``receive()``, which is raced against a timeout and a cancel event with
``race()``.
"""

import asyncio
import enum
from contextlib import asynccontextmanager
from typing import Any, Awaitable, NamedTuple, Optional, Tuple


# =============================================================================
# First-to-complete race
# =============================================================================

class Outcome(enum.Enum):
    COMPLETED = 'completed'
    TIMEOUT = 'timeout'
    CANCELLED = 'cancelled'


class RaceResult(NamedTuple):
    outcome: Outcome
    value: Any = None

    @property
    def completed(self) -> bool:
        return self.outcome is Outcome.COMPLETED

    @property
    def timed_out(self) -> bool:
        return self.outcome is Outcome.TIMEOUT

    @property
    def cancelled(self) -> bool:
        return self.outcome is Outcome.CANCELLED


async def race(awaitable: Awaitable, timeout: Optional[float] = None,
               cancel_event: Optional[asyncio.Event] = None) -> RaceResult:
    """
    Wait for ``awaitable``, a timeout or a cancel event, whichever comes first.

    The losing awaitable is cancelled and awaited before returning. If it
    managed to finish anyway (for example a semaphore acquire that was
    granted in the same loop iteration), its result is reported as
    COMPLETED so the caller can account for it. When the calling task is
    itself cancelled, ``awaitable`` is cancelled and awaited before the
    CancelledError is re-raised; a caller that passed in its own future can
    then inspect it.

    Args:
        awaitable: Operation to wait for
        timeout: Seconds to wait, or None for no limit
        cancel_event: Event that aborts the wait when set

    Returns:
        RaceResult with the outcome and, when completed, the value

    Raises:
        Whatever ``awaitable`` raised, if it completed with an exception
    """
    task = asyncio.ensure_future(awaitable)

    if cancel_event is not None and cancel_event.is_set():
        return await _abandon(task, Outcome.CANCELLED)

    waiters = {task}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return RaceResult(Outcome.COMPLETED, task.result())

    if cancel_waiter is not None and cancel_waiter in done:
        return await _abandon(task, Outcome.CANCELLED)
    return await _abandon(task, Outcome.TIMEOUT)


async def _abandon(task: asyncio.Future, outcome: Outcome) -> RaceResult:
    task.cancel()
    result, = await asyncio.gather(task, return_exceptions=True)
    if isinstance(result, BaseException):
        return RaceResult(outcome)
    return RaceResult(Outcome.COMPLETED, result)


# =============================================================================
# Datagram endpoint
# =============================================================================

class DatagramQueueProtocol(asyncio.DatagramProtocol):
    """Queues every datagram (and socket error) for the owning query."""

    def __init__(self):
        super().__init__()
        self.transport = None
        self.packets = asyncio.Queue()

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.packets.put_nowait((data, addr))

    def error_received(self, exc):
        self.packets.put_nowait(exc)


class UdpEndpoint:
    """Thin wrapper over a datagram transport with an awaitable receive."""

    def __init__(self, transport, protocol: DatagramQueueProtocol):
        self.transport = transport
        self.protocol = protocol

    def send(self, data: bytes, addr: Tuple[str, int]):
        self.transport.sendto(data, addr)

    async def receive(self) -> Tuple[bytes, Tuple[str, int]]:
        """
        Wait for the next datagram.

        Returns:
            (data, (host, port)) of the sender

        Raises:
            OSError: If the socket reported an error
        """
        item = await self.protocol.packets.get()
        if isinstance(item, Exception):
            raise item
        data, addr = item
        return data, (addr[0], addr[1])

    def close(self):
        self.transport.close()


@asynccontextmanager
async def open_udp_endpoint(allow_broadcast: bool = False):
    """
    Open an IPv4 datagram endpoint bound to an ephemeral port.

    The socket is closed when the context exits, whatever the reason.
    """
    loop = asyncio.get_running_loop()

    transport, protocol = await loop.create_datagram_endpoint(
        DatagramQueueProtocol,
        local_addr=('0.0.0.0', 0),
        allow_broadcast=allow_broadcast,
    )
    endpoint = UdpEndpoint(transport, protocol)

    try:
        yield endpoint
    finally:
        endpoint.close()
