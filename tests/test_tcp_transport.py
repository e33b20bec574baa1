"""Tests for the TCP transport against a local socket server."""

import asyncio
import json

import pytest
import pytest_asyncio

from dvl_a50.adapters import TcpTransport, TransportError
from dvl_a50.core import Response, VelocityReport
from dvl_a50.driver import DvlA50Driver


class FakeDevice:
    """Line-oriented TCP server standing in for the DVL."""

    def __init__(self) -> None:
        self.received: asyncio.Queue[str] = asyncio.Queue()
        self.connected = asyncio.Event()
        self._writer: asyncio.StreamWriter | None = None
        self._server: asyncio.AbstractServer | None = None
        self.auto_ack = False

    async def start(self, port: int) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", port)

    async def stop(self) -> None:
        if self._writer is not None:
            self._writer.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def push(self, line: str) -> None:
        await asyncio.wait_for(self.connected.wait(), timeout=1.0)
        assert self._writer is not None
        self._writer.write(line.encode("utf-8") + b"\n")
        await self._writer.drain()

    async def hang_up(self) -> None:
        assert self._writer is not None
        self._writer.close()
        await self._writer.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writer = writer
        self.connected.set()
        while True:
            try:
                data = await reader.readline()
            except ConnectionError:
                break
            if not data:
                break
            line = data.decode("utf-8").rstrip("\n")
            await self.received.put(line)
            if self.auto_ack:
                command = json.loads(line)["command"]
                response = {
                    "response_to": command,
                    "success": True,
                    "error_message": "",
                    "result": None,
                    "format": "json_v3.1",
                    "type": "response",
                }
                writer.write(json.dumps(response).encode("utf-8") + b"\n")
                await writer.drain()


@pytest_asyncio.fixture
async def device(unused_tcp_port):
    server = FakeDevice()
    await server.start(unused_tcp_port)
    try:
        yield server
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_send_and_receive_lines(device, unused_tcp_port) -> None:
    transport = TcpTransport("127.0.0.1", unused_tcp_port, connect_timeout=1.0)
    async with transport:
        assert transport.is_connected

        transport.send('{"command": "trigger_ping"}')
        await transport.drain()
        assert await asyncio.wait_for(device.received.get(), 1.0) == '{"command": "trigger_ping"}'

        await device.push('{"hello": "world"}')
        assert await asyncio.wait_for(transport.receive_line(), 1.0) == '{"hello": "world"}'

    assert not transport.is_connected


@pytest.mark.asyncio
async def test_receive_returns_none_at_end_of_stream(device, unused_tcp_port) -> None:
    async with TcpTransport("127.0.0.1", unused_tcp_port) as transport:
        await device.push("last")
        await device.hang_up()

        assert await asyncio.wait_for(transport.receive_line(), 1.0) == "last"
        assert await asyncio.wait_for(transport.receive_line(), 1.0) is None


@pytest.mark.asyncio
async def test_invalid_utf8_is_replaced(device, unused_tcp_port) -> None:
    async with TcpTransport("127.0.0.1", unused_tcp_port) as transport:
        await asyncio.wait_for(device.connected.wait(), 1.0)
        device._writer.write(b"\xff\xfe\n")

        line = await asyncio.wait_for(transport.receive_line(), 1.0)

    assert "\ufffd" in line


@pytest.mark.asyncio
async def test_connect_failure_raises_transport_error(unused_tcp_port) -> None:
    transport = TcpTransport("127.0.0.1", unused_tcp_port, connect_timeout=1.0)

    with pytest.raises(TransportError):
        await transport.connect()


@pytest.mark.asyncio
async def test_send_requires_connection() -> None:
    transport = TcpTransport("127.0.0.1", 16171)

    with pytest.raises(TransportError):
        transport.send('{"command": "trigger_ping"}')
    with pytest.raises(TransportError):
        await transport.receive_line()


@pytest.mark.asyncio
async def test_driver_round_trip_over_tcp(device, unused_tcp_port, velocity_payload) -> None:
    device.auto_ack = True
    reports: list[VelocityReport] = []
    received = asyncio.Event()

    def on_velocity(report: VelocityReport) -> None:
        reports.append(report)
        received.set()

    async with TcpTransport("127.0.0.1", unused_tcp_port) as transport:
        async with DvlA50Driver(transport, watchdog_interval=0.01) as driver:
            driver.attach_velocity_callback(on_velocity)

            first = driver.trigger_ping()
            second = driver.set_config({"parameters": {"speed_of_sound": 1480}})
            await device.push(json.dumps(velocity_payload))

            assert await asyncio.wait_for(first, 1.0) == Response(True, "")
            assert await asyncio.wait_for(second, 1.0) == Response(True, "")
            await asyncio.wait_for(received.wait(), 1.0)

    assert reports[0].altitude == pytest.approx(0.35)
    sent = [json.loads(await device.received.get()) for _ in range(2)]
    assert sent == [
        {"command": "trigger_ping"},
        {"command": "set_config", "parameters": {"speed_of_sound": 1480}},
    ]
