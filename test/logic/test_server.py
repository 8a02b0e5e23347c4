import asyncio
import math
import time
from unittest.mock import patch

import pytest
import pytest_asyncio

from qosc.backend import GKBackend, get_backend
from qosc.config import ServerConfig
from qosc.server import OscClient, OscServer
from qosc.server import codec
from qosc.types import CommsError

TIMEOUT = 3.0


def _client(server, namespace="gk"):
    host, port = server.local_address
    return OscClient(host, port, namespace=namespace, timeout=TIMEOUT)


@pytest_asyncio.fixture
async def server(fake_clock):
    srv = OscServer(
        get_backend("gk", seed=1),
        host="127.0.0.1",
        port=0,
        max_qubits=32,
        session_timeout=10.0,
        sweep_interval=60.0,
        clock=fake_clock,
    )
    async with srv:
        yield srv


@pytest_asyncio.fixture
async def client(server):
    async with _client(server) as c:
        yield c


class TestRequests:
    @pytest.mark.asyncio
    async def test_init(self, client):
        reply = await client.request("/gk/init", 3)
        assert reply.address == "/gk/init/reply"
        assert reply.args == ("ok",)

    @pytest.mark.asyncio
    async def test_bell_pair(self, client):
        await client.init(2)
        await client.gate("H", [0])
        await client.gate("CNOT", [0, 1])
        bits = OscClient.bits(await client.measure([0, 1]))
        assert bits[0] == bits[1]

    @pytest.mark.asyncio
    async def test_measure_all(self, client):
        await client.init(3)
        await client.gate("X", [1])
        assert OscClient.bits(await client.measure()) == [0, 1, 0]

    @pytest.mark.asyncio
    async def test_tag_echoed(self, client):
        reply = await client.init(2, tag="txn-1")
        assert reply.args == ("ok", "txn-1")
        reply = await client.gate("X", [5], tag="txn-2")
        assert reply.address == "/gk/gate/error"
        assert reply.args[-1] == "txn-2"

    @pytest.mark.asyncio
    async def test_query(self, client, fake_clock):
        await client.init(2)
        fake_clock.advance(4)
        reply = await client.query()
        assert reply.address == "/gk/query/reply"
        assert reply.args[0] == 2
        assert reply.args[1] == 0
        assert reply.args[2] == pytest.approx(4.0)
        info = OscClient.session_info(reply)
        assert info.backend == "gk"
        assert info.qubit_count == 2

    @pytest.mark.asyncio
    async def test_reset(self, client):
        await client.init(1)
        assert (await client.reset()).args == ("ok",)
        reply = await client.measure([0])
        assert reply.args[0] == "NoActiveSession"

    @pytest.mark.asyncio
    async def test_documented_exchange(self, client):
        reply = await client.request("/gk/init", 3)
        assert (reply.address, reply.args) == ("/gk/init/reply", ("ok",))
        reply = await client.request("/gk/gate", "X", [1], [])
        assert (reply.address, reply.args) == ("/gk/gate/reply", ("ok",))
        reply = await client.request("/gk/measure", [1])
        assert reply.address == "/gk/measure/reply"
        assert OscClient.bits(reply) == [1]


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_command(self, client):
        reply = await client.request("/gk/teleport", 1)
        assert reply.address == "/gk/teleport/error"
        assert reply.args[0] == "UnknownCommand"

    @pytest.mark.asyncio
    async def test_unserved_namespace(self, client):
        reply = await client.request("/steane/init", 1)
        assert reply.args[0] == "UnknownCommand"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, client):
        reply = await client.request("/gk/init", 2.5)
        assert reply.address == "/gk/init/error"
        assert list(reply.args) == [
            "InvalidArguments",
            reply.args[1],
            0,
        ]

    @pytest.mark.asyncio
    async def test_init_out_of_range(self, client):
        reply = await client.init(33)
        assert reply.args[0] == "OutOfRange"
        assert reply.args[2] == 0

    @pytest.mark.asyncio
    async def test_out_of_range_leaves_state(self, client):
        await client.init(2)
        await client.gate("X", [0])
        reply = await client.gate("X", [2])
        assert reply.args[0] == "OutOfRange"
        assert reply.args[2] == 1
        assert OscClient.bits(await client.measure([0, 1])) == [1, 0]

    @pytest.mark.asyncio
    async def test_no_session(self, client):
        reply = await client.gate("H", [0])
        assert reply.address == "/gk/gate/error"
        assert reply.args[0] == "NoActiveSession"

    @pytest.mark.asyncio
    async def test_non_clifford_degrades(self, client):
        await client.init(1)
        reply = await client.gate("RZ", [0], [0.3])
        assert reply.args[0] == "BackendFailure"
        assert reply.args[2] == "NonClifford"
        assert (await client.query()).args[1] == 1
        # quarter turn rotations still work
        assert (await client.gate("RX", [0], [math.pi])).args == ("ok",)
        assert OscClient.bits(await client.measure([0])) == [1]

    @pytest.mark.asyncio
    async def test_garbage_then_init(self, server, client):
        client.send_raw(b"\x00\x01not osc at all")
        client.send_raw(b"")
        reply = await client.init(3)
        assert reply.args == ("ok",)
        assert server.get_stats()["protocol_errors"] >= 1

    @pytest.mark.asyncio
    async def test_expired_session(self, client, fake_clock):
        await client.init(1)
        fake_clock.advance(11)
        reply = await client.gate("X", [0])
        assert reply.args[0] == "SessionExpired"
        assert "init" in reply.args[1]
        reply = await client.measure([0])
        assert reply.args[0] == "SessionExpired"
        assert (await client.init(1)).args == ("ok",)
        assert OscClient.bits(await client.measure([0])) == [0]


class TestClients:
    @pytest.mark.asyncio
    async def test_isolation(self, server):
        async with _client(server) as alice, _client(server) as bob:
            await alice.init(1)
            await bob.init(1)
            await alice.gate("X", [0])
            assert OscClient.bits(await bob.measure([0])) == [0]
            assert OscClient.bits(await alice.measure([0])) == [1]
            await bob.reset()
            assert OscClient.bits(await alice.measure([0])) == [1]

    @pytest.mark.asyncio
    async def test_ordering(self, client):
        await client.init(1)
        # fire and forget three flips, then measure: lanes keep arrival order
        for _ in range(3):
            client.send_raw(codec.encode("/gk/gate", ["X", [0]]))
        assert OscClient.bits(await client.measure([0])) == [1]

    @pytest.mark.asyncio
    async def test_concurrent_clients(self, server):
        async def run(n):
            async with _client(server) as c:
                await c.init(2)
                if n % 2:
                    await c.gate("X", [1])
                return OscClient.bits(await c.measure([0, 1]))

        results = await asyncio.gather(*(run(n) for n in range(8)))
        assert results == [[0, n % 2] for n in range(8)]
        assert server.get_stats()["sessions"]["active_sessions"] == 8

    @pytest.mark.asyncio
    async def test_session_limit_reply(self):
        srv = OscServer(get_backend("gk"), host="127.0.0.1", port=0, max_sessions=1)
        async with srv, _client(srv) as first, _client(srv) as second:
            await first.init(1)
            reply = await second.init(1)
            assert reply.address == "/gk/init/error"
            assert reply.args[0] == "BackendFailure"
            assert reply.args[2] == "SessionLimit"
            assert (await first.gate("X", [0])).args == ("ok",)

    @pytest.mark.asyncio
    async def test_timeout_without_server(self):
        async with OscClient("127.0.0.1", 9, timeout=0.2) as c:
            with pytest.raises(CommsError):
                await c.init(1)


@pytest.mark.asyncio
async def test_steane_server():
    config = ServerConfig(name="steane", backend="steane", port=0, seed=3)
    async with OscServer.from_config(config) as srv:
        async with _client(srv, namespace="steane") as c:
            await c.init(2)
            await c.gate("X", [1])
            assert OscClient.bits(await c.measure([0, 1])) == [0, 1]
            reply = await c.gate("RX", [0], [math.pi])
            assert reply.args[0] == "InvalidArguments"


def test_rejects_invalid_backend():
    class NotABackend:
        name = "bad"

    with pytest.raises(ValueError):
        OscServer(NotABackend())


class SlowGK(GKBackend):
    """Stabilizer backend whose gates take a while, recording register overlaps."""

    def __init__(self, delay: float = 0.5):
        super().__init__(seed=1)
        self.delay = delay
        self.busy = False
        self.overlaps = []

    def _apply_gate(self, handle, gate, qubits, params):
        self.busy = True
        try:
            time.sleep(self.delay)
            super()._apply_gate(handle, gate, qubits, params)
        finally:
            self.busy = False

    def _reset(self, handle):
        self.overlaps.append(self.busy)
        super()._reset(handle)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_stop_waits_for_running_gate(self):
        backend = SlowGK()
        srv = OscServer(backend, host="127.0.0.1", port=0)
        await srv.start()
        try:
            async with _client(srv) as c:
                await c.init(1)
                c.send_raw(codec.encode("/gk/gate", ["X", [0]]))
                await asyncio.sleep(0.1)
        finally:
            await srv.stop()
        # the register was released only after the gate returned
        assert backend.overlaps == [False]


class TestSendFailures:
    @pytest.mark.asyncio
    async def test_failed_send_does_not_affect_others(self, server):
        async with _client(server) as broken, _client(server) as healthy:
            broken_port = broken.endpoint.local_address[1]
            sendto = server.endpoint.sendto

            def flaky_sendto(data, addr):
                if addr[1] == broken_port:
                    raise OSError("host unreachable")
                sendto(data, addr)

            with patch.object(server.endpoint, "sendto", side_effect=flaky_sendto):
                broken.send_raw(codec.encode("/gk/init", [1]))
                assert (await healthy.init(2)).args == ("ok",)
                async with asyncio.timeout(TIMEOUT):
                    while server.get_stats()["send_errors"] < 1:
                        await asyncio.sleep(0.01)

            assert (await healthy.gate("X", [1])).args == ("ok",)
            assert OscClient.bits(await healthy.measure()) == [0, 1]
            # the broken client's session exists, only its reply was lost
            assert OscClient.bits(await broken.measure([0])) == [0]

    @pytest.mark.asyncio
    async def test_error_replies_counted(self, server, client):
        await client.gate("H", [0])
        await client.request("/gk/teleport")
        assert server.get_stats()["error_replies"] == 2
