# -*- coding: utf-8 -*-
"""
Asyncio OSC client for a qosc server.

Each request is one datagram; the client then waits for the first datagram
whose address is the request address plus "/reply" or "/error". Anything else
(late replies to requests that already timed out, for instance) is logged and
skipped. UDP is lossy: a request with no reply within the timeout raises
CommsError and is not retried, since gate requests are not idempotent.

Examples
--------
```python
async with OscClient("127.0.0.1", 9000, namespace="gk") as client:
    await client.init(2)
    await client.gate("H", [0])
    await client.gate("CX", [0, 1])
    reply = await client.measure([0, 1])
    print(OscClient.bits(reply))  # [0, 0] or [1, 1]
```
"""

# ============================================================================

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from loguru import logger

from qosc.types import (
    CMD,
    ERROR_SUFFIX,
    REPLY_SUFFIX,
    CommsError,
    Message,
    OscArg,
    ProtocolError,
    SessionInfo,
)
from qosc.util import DEFAULT_BACKEND, DEFAULT_HOST_ADDR, DEFAULT_PORT, DEFAULT_TIMEOUT

from . import codec
from .replies import blob_to_bits
from .router import command_address
from .transport import UdpEndpoint

# ============================================================================


class OscClient:
    def __init__(
        self,
        host: str = DEFAULT_HOST_ADDR,
        port: int = DEFAULT_PORT,
        namespace: str = DEFAULT_BACKEND,
        timeout: float = DEFAULT_TIMEOUT,
        local_host: str = "0.0.0.0",
    ):
        self.server = (host, port)
        self.namespace = namespace
        self.timeout = timeout
        self.local_host = local_host
        self.endpoint: Optional[UdpEndpoint] = None

    async def open(self) -> None:
        if self.endpoint is None:
            self.endpoint = await UdpEndpoint.bind(self.local_host, 0)
            logger.debug(
                "Client bound to {}:{}, server {}:{}",
                *self.endpoint.local_address,
                *self.server,
            )

    def close(self) -> None:
        if self.endpoint is not None:
            self.endpoint.close()
            self.endpoint = None

    async def __aenter__(self) -> OscClient:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------------

    def send_raw(self, data: bytes) -> None:
        """Send an arbitrary datagram, no reply expected."""
        if self.endpoint is None:
            raise CommsError("Client is not open.")
        self.endpoint.sendto(data, self.server)

    async def request(
        self, address: str, *args: OscArg, timeout: Optional[float] = None
    ) -> Message:
        """Send one message and wait for its reply or error message.

        Raises
        ------
        CommsError
            If the client is not open, or nothing matching arrives in time.
        """
        if self.endpoint is None:
            raise CommsError("Client is not open.")
        timeout = self.timeout if timeout is None else timeout
        expected = (address + REPLY_SUFFIX, address + ERROR_SUFFIX)

        logger.debug("*REQUEST* (client->): {}", Message(address, tuple(args)))
        self.endpoint.sendto(codec.encode(address, args), self.server)
        try:
            async with asyncio.timeout(timeout):
                while True:
                    data, _ = await self.endpoint.recv()
                    try:
                        reply = codec.decode(data)
                    except ProtocolError as e:
                        logger.warning("Skipping undecodable reply: {}", e.message)
                        continue
                    if reply.address in expected:
                        logger.debug("*RESPONSE* (client<-): {}", reply)
                        return reply
                    logger.debug("Skipping unrelated reply: {}", reply)
        except TimeoutError:
            raise CommsError(
                f"No reply to {address} from {self.server[0]}:{self.server[1]} "
                f"within {timeout}s."
            ) from None

    # ------------------------------------------------------------------------
    # one helper per command

    def _address(self, kind: str) -> str:
        return command_address(self.namespace, kind)

    @staticmethod
    def _with_tag(args: list, tag: Optional[str]) -> list:
        if tag is not None:
            args.append(tag)
        return args

    async def init(self, qubit_count: int, tag: Optional[str] = None) -> Message:
        args = self._with_tag([qubit_count], tag)
        return await self.request(self._address(CMD.INIT), *args)

    async def gate(
        self,
        name: str,
        qubits: Sequence[int],
        params: Sequence[float] = (),
        tag: Optional[str] = None,
    ) -> Message:
        args: list = [name, [int(q) for q in qubits]]
        if params:
            args.append([float(p) for p in params])
        return await self.request(self._address(CMD.GATE), *self._with_tag(args, tag))

    async def measure(
        self, qubits: Sequence[int] = (), tag: Optional[str] = None
    ) -> Message:
        args = self._with_tag([[int(q) for q in qubits]], tag)
        return await self.request(self._address(CMD.MEASURE), *args)

    async def reset(self, tag: Optional[str] = None) -> Message:
        return await self.request(self._address(CMD.RESET), *self._with_tag([], tag))

    async def query(self, tag: Optional[str] = None) -> Message:
        return await self.request(self._address(CMD.QUERY), *self._with_tag([], tag))

    # ------------------------------------------------------------------------

    @staticmethod
    def is_error(reply: Message) -> bool:
        return reply.address.endswith(ERROR_SUFFIX)

    @staticmethod
    def bits(reply: Message) -> list[int]:
        """Measurement outcomes of a measure reply."""
        if OscClient.is_error(reply):
            raise ValueError(f"Not a measure reply: {reply}")
        return blob_to_bits(reply.args[0])

    @staticmethod
    def session_info(reply: Message) -> SessionInfo:
        """SessionInfo of a query reply."""
        if OscClient.is_error(reply):
            raise ValueError(f"Not a query reply: {reply}")
        return SessionInfo.from_msgpack(reply.args[3])
