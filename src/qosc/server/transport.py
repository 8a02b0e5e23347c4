# -*- coding: utf-8 -*-
"""
UDP endpoint on the asyncio event loop.

The protocol callback only puts datagrams into a bounded inbox; the owner of the
endpoint awaits `recv()`, which is the single suspension point of its receive
loop. When the inbox is full the datagram is dropped and counted.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from qosc.types import ClientId
from qosc.util import DEFAULT_INBOX_SIZE


class OscServerProtocol(asyncio.DatagramProtocol):
    def __init__(self, inbox: asyncio.Queue):
        self.inbox = inbox
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.dropped = 0

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr):
        try:
            self.inbox.put_nowait((data, (addr[0], addr[1])))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Inbox full, dropping datagram from {}:{}", addr[0], addr[1])

    def error_received(self, exc):
        # e.g. ICMP port unreachable after replying to a client that went away
        logger.warning("Socket error: {}", exc)

    def connection_lost(self, exc):
        if exc is not None:
            logger.error("UDP endpoint lost: {}", exc)


class UdpEndpoint:
    """A bound UDP socket with an awaitable receive."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        protocol: OscServerProtocol,
        inbox: asyncio.Queue,
    ):
        self._transport = transport
        self._protocol = protocol
        self._inbox = inbox

    @classmethod
    async def bind(
        cls, host: str, port: int, inbox_size: int = DEFAULT_INBOX_SIZE
    ) -> UdpEndpoint:
        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue = asyncio.Queue(maxsize=inbox_size)
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: OscServerProtocol(inbox), local_addr=(host, port)
        )
        return cls(transport, protocol, inbox)

    @property
    def local_address(self) -> ClientId:
        sockname = self._transport.get_extra_info("sockname")
        return sockname[0], sockname[1]

    @property
    def dropped(self) -> int:
        return self._protocol.dropped

    async def recv(self) -> tuple[bytes, ClientId]:
        return await self._inbox.get()

    def sendto(self, data: bytes, addr: ClientId) -> None:
        self._transport.sendto(data, addr)

    def close(self) -> None:
        self._transport.close()
