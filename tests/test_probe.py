"""Tests for the status probe engine."""

import asyncio

import pytest

from q2browser.errors import ProbeEngineClosedError
from q2browser.models import Endpoint, PlayerInfo, ServerEntry
from q2browser.networking import probe as probe_module
from q2browser.networking.probe import GameServerProbe

STATUS_REPLY = (
    b'\xff\xff\xff\xffprint\n'
    b'\\hostname\\Test Server\\mapname\\q2dm1\\maxclients\\8\\game\\ctf\n'
    b'5 10 "Player"\n'
)


def reply(payload):
    def handler(data, addr, transport):
        if data == b'\xff\xff\xff\xffstatus':
            transport.sendto(payload, addr)
    return handler


def fake_endpoints(count):
    return [Endpoint('10.0.0.1', 27910 + i) for i in range(count)]


class ConcurrencyTracker:
    """Stand-in for a single UDP exchange that records overlap."""

    def __init__(self, delay=0.05):
        self.delay = delay
        self.current = 0
        self.peak = 0

    async def __call__(self, endpoint, cancel_event):
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.current -= 1
        return ServerEntry(address=endpoint.address, port=endpoint.port, ping=1)


class TestProbeServer:
    async def test_success(self, test_config, udp_server):
        server = await udp_server(reply(STATUS_REPLY))
        probe = GameServerProbe(test_config)

        entry = await probe.probe_server(Endpoint('127.0.0.1', server.port))

        assert entry.full_address == f'127.0.0.1:{server.port}'
        assert entry.hostname == 'Test Server'
        assert entry.map == 'q2dm1'
        assert entry.mod == 'ctf'
        assert entry.max_clients == 8
        assert entry.players == [PlayerInfo(score=5, ping=10, name='Player')]
        assert 0 <= entry.ping < test_config.PROBE_TIMEOUT_MS
        assert entry.is_favorite is False

    async def test_accepts_plain_tuple(self, test_config, udp_server):
        server = await udp_server(reply(STATUS_REPLY))
        probe = GameServerProbe(test_config)

        entry = await probe.probe_server(('127.0.0.1', server.port))

        assert entry.endpoint == Endpoint('127.0.0.1', server.port)

    async def test_high_bit_text(self, test_config, udp_server):
        server = await udp_server(reply(b'\xff\xff\xff\xffprint\n\\hostname\\caf\xe9\n'))
        probe = GameServerProbe(test_config)

        entry = await probe.probe_server(Endpoint('127.0.0.1', server.port))

        assert entry.hostname == 'caf\xe9'

    async def test_reply_without_oob_header(self, test_config, udp_server):
        server = await udp_server(reply(b'print\n\\hostname\\x\n'))
        probe = GameServerProbe(test_config)

        assert await probe.probe_server(Endpoint('127.0.0.1', server.port)) is None

    async def test_timeout_releases_permit(self, test_config, udp_server):
        test_config.PROBE_TIMEOUT_MS = 100
        server = await udp_server()
        probe = GameServerProbe(test_config)

        assert await probe.probe_server(Endpoint('127.0.0.1', server.port)) is None
        assert probe.in_flight == 0
        assert probe.available_permits == probe.max_concurrent

    async def test_closed(self, test_config):
        probe = GameServerProbe(test_config)
        probe.close()

        assert probe.closed
        with pytest.raises(ProbeEngineClosedError):
            await probe.probe_server(Endpoint('127.0.0.1', 27910))
        with pytest.raises(ProbeEngineClosedError):
            await probe.probe_servers([Endpoint('127.0.0.1', 27910)])

    async def test_task_cancellation_releases_permit(self, test_config, udp_server):
        test_config.PROBE_TIMEOUT_MS = 5000
        server = await udp_server()
        probe = GameServerProbe(test_config)

        task = asyncio.ensure_future(probe.probe_server(Endpoint('127.0.0.1', server.port)))
        await asyncio.sleep(0.1)
        assert probe.in_flight == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert probe.in_flight == 0
        assert probe.available_permits == probe.max_concurrent

    @pytest.mark.parametrize('steps', [0, 1, 2])
    async def test_cancel_right_after_grant_returns_permit(self, test_config, udp_server, steps):
        test_config.MAX_CONCURRENT_PROBES = 1
        test_config.PROBE_TIMEOUT_MS = 5000
        server = await udp_server()
        probe = GameServerProbe(test_config)

        await probe._semaphore.acquire()
        task = asyncio.ensure_future(probe.probe_server(Endpoint('127.0.0.1', server.port)))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        probe._semaphore.release()
        for _ in range(steps):
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.05)

        assert not probe._semaphore.locked()
        assert probe.available_permits == 1
        assert probe.in_flight == 0

    async def test_parse_failure_gives_none(self, test_config, udp_server, monkeypatch):
        server = await udp_server(reply(STATUS_REPLY))
        probe = GameServerProbe(test_config)

        def broken_parse(response):
            raise ValueError('bad reply')

        monkeypatch.setattr(probe_module, 'parse_status_response', broken_parse)

        assert await probe.probe_server(Endpoint('127.0.0.1', server.port)) is None
        assert probe.available_permits == probe.max_concurrent


class TestProbeServers:
    async def test_concurrency_cap(self, test_config):
        test_config.MAX_CONCURRENT_PROBES = 3
        probe = GameServerProbe(test_config)
        tracker = ConcurrencyTracker()
        probe._probe = tracker

        results = await probe.probe_servers(fake_endpoints(10))

        assert len(results) == 10
        assert tracker.peak == 3
        assert probe.peak_in_flight == 3
        assert probe.available_permits == 3

    async def test_sink_receives_each_entry(self, test_config):
        probe = GameServerProbe(test_config)
        probe._probe = ConcurrencyTracker(delay=0)
        delivered = []

        results = await probe.probe_servers(fake_endpoints(4), delivered.append)

        assert sorted(e.port for e in delivered) == [27910, 27911, 27912, 27913]
        assert delivered == results

    async def test_async_sink(self, test_config):
        probe = GameServerProbe(test_config)
        probe._probe = ConcurrencyTracker(delay=0)
        delivered = []

        async def sink(entry):
            await asyncio.sleep(0)
            delivered.append(entry)

        await probe.probe_servers(fake_endpoints(3), sink)

        assert len(delivered) == 3

    async def test_failing_sink_does_not_stop_batch(self, test_config):
        probe = GameServerProbe(test_config)
        probe._probe = ConcurrencyTracker(delay=0)

        def sink(entry):
            raise RuntimeError('display went away')

        results = await probe.probe_servers(fake_endpoints(5), sink)

        assert len(results) == 5

    async def test_empty_batch(self, test_config):
        probe = GameServerProbe(test_config)

        assert await probe.probe_servers([]) == []

    async def test_cancel_event(self, test_config, udp_server):
        test_config.MAX_CONCURRENT_PROBES = 5
        test_config.PROBE_TIMEOUT_MS = 5000
        server = await udp_server()
        probe = GameServerProbe(test_config)
        endpoints = [Endpoint('127.0.0.1', server.port)] * 20

        loop = asyncio.get_running_loop()
        cancel_event = asyncio.Event()
        loop.call_later(0.1, cancel_event.set)

        start = loop.time()
        results = await probe.probe_servers(endpoints, cancel_event=cancel_event)

        assert results == []
        assert loop.time() - start < 2
        assert probe.in_flight == 0
        assert probe.available_permits == 5

    async def test_mixed_batch(self, test_config, udp_server):
        test_config.PROBE_TIMEOUT_MS = 300
        alive = await udp_server(reply(STATUS_REPLY))
        silent = await udp_server()
        probe = GameServerProbe(test_config)

        results = await probe.probe_servers([
            Endpoint('127.0.0.1', silent.port),
            Endpoint('127.0.0.1', alive.port),
        ])

        assert [entry.port for entry in results] == [alive.port]

    async def test_overlong_player_line_keeps_batch(self, test_config, udp_server):
        test_config.PROBE_TIMEOUT_MS = 1000
        good = await udp_server(reply(STATUS_REPLY))
        noisy = await udp_server(reply(
            b'\xff\xff\xff\xffprint\n\\hostname\\noisy\n' + b'9' * 5000 + b' 20 "Alice"\n'
        ))
        probe = GameServerProbe(test_config)

        results = await probe.probe_servers([
            Endpoint('127.0.0.1', noisy.port),
            Endpoint('127.0.0.1', good.port),
        ])

        by_port = {entry.port: entry for entry in results}
        assert by_port[good.port].hostname == 'Test Server'
        assert by_port[noisy.port].hostname == 'noisy'
        assert by_port[noisy.port].players == []
