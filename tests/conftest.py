"""pytest configuration and fake servers for q2browser tests."""

import asyncio
import inspect

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from q2browser.config import Config


class FakeUdpServer(asyncio.DatagramProtocol):
    """Loopback UDP server that hands every datagram to a test handler."""

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.transport = None
        self.received = []

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.received.append((data, addr))
        if self.handler is None:
            return
        outcome = self.handler(data, addr, self.transport)
        if inspect.isawaitable(outcome):
            asyncio.ensure_future(outcome)

    @property
    def port(self):
        return self.transport.get_extra_info('sockname')[1]


@pytest.fixture
def test_config():
    cfg = Config()
    cfg.MASTER_HOST = '127.0.0.1'
    cfg.MASTER_PORT = 27900
    cfg.USE_HTTP_MASTER = False
    cfg.HTTP_MASTER_URL = None
    cfg.ENABLE_LAN_BROADCAST = False
    cfg.LAN_BROADCAST_ADDRESS = '127.0.0.1'
    cfg.MAX_CONCURRENT_PROBES = 10
    cfg.PROBE_TIMEOUT_MS = 500
    cfg.FAVORITES = []
    return cfg


@pytest.fixture
async def udp_server():
    """Factory starting FakeUdpServer instances on 127.0.0.1."""
    transports = []

    async def start(handler=None):
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: FakeUdpServer(handler),
            local_addr=('127.0.0.1', 0),
        )
        transports.append(transport)
        return protocol

    yield start

    for transport in transports:
        transport.close()


@pytest.fixture
async def http_master():
    """Factory starting an aiohttp server that serves one fixed body."""
    servers = []

    async def start(body: bytes, content_type='application/octet-stream', status=200, delay=0):
        async def handle_list(request):
            if delay:
                await asyncio.sleep(delay)
            headers = {'Content-Type': content_type} if content_type else {}
            return web.Response(body=body, status=status, headers=headers)

        app = web.Application()
        app.router.add_get('/', handle_list)

        server = TestServer(app, host='127.0.0.1')
        await server.start_server()
        servers.append(server)
        return str(server.make_url('/?raw=2'))

    yield start

    for server in servers:
        await server.close()
