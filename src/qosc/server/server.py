# -*- coding: utf-8 -*-
"""
The OSC command server.

Data flow for one datagram:

1. The receive loop awaits the next datagram (its only suspension point).
2. The codec decodes it. Undecodable bytes are logged and dropped, unanswered.
3. The router matches the address. An unknown address is answered at once
   with an UnknownCommand error.
4. The message is submitted to the dispatcher as a work unit on the sender's
   lane, and the loop goes back to receiving.
5. On the lane, the interpreter validates the arguments into a Command, the
   session manager runs it against the sender's register, and exactly one
   reply (success or error) is sent back to the sender.

No error stops the receive loop or touches another client's session.
"""

# ============================================================================

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from loguru import logger
from pythonosc.osc_message_builder import BuildError
from setproctitle import setproctitle

import qosc.util
from qosc.backend import get_backend, validate_backend
from qosc.types import (
    CMD,
    BackendFailure,
    BackendProtocol,
    ClientId,
    Command,
    CommandError,
    ProtocolError,
    QoscError,
    Reply,
    UnknownCommand,
)
from qosc.util import (
    DEFAULT_DROP_POLICY,
    DEFAULT_HOST_ADDR,
    DEFAULT_INBOX_SIZE,
    DEFAULT_LOGLEVEL,
    DEFAULT_MAX_PENDING,
    DEFAULT_MAX_QUBITS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_PORT,
    DEFAULT_SESSION_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_TOMBSTONE_TTL,
    format_error_response,
)

from . import codec
from .dispatch import Dispatcher, WorkUnit
from .interpreter import Interpreter
from .registry import register_server, unregister_server
from .replies import (
    error_reply,
    measure_payload,
    ok_payload,
    query_payload,
    success_reply,
)
from .router import Router
from .session import SessionManager, format_client
from .transport import UdpEndpoint

if TYPE_CHECKING:
    from qosc.config import ServerConfig

# ============================================================================


class OscServer:
    """Serves one or more backends over a single UDP socket.

    Parameters
    ----------
    backends : BackendProtocol or Mapping[str, BackendProtocol]
        A backend, served under its own name, or a namespace -> backend map.
    host, port : str, int
        Bind address; port 0 picks a free port (see `local_address`).
    """

    def __init__(
        self,
        backends: BackendProtocol | Mapping[str, BackendProtocol],
        host: str = DEFAULT_HOST_ADDR,
        port: int = DEFAULT_PORT,
        max_qubits: int = DEFAULT_MAX_QUBITS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        session_timeout: Optional[float] = DEFAULT_SESSION_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        tombstone_ttl: float = DEFAULT_TOMBSTONE_TTL,
        max_pending: int = DEFAULT_MAX_PENDING,
        inbox_size: int = DEFAULT_INBOX_SIZE,
        drop_policy: str = DEFAULT_DROP_POLICY,
        offload: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not isinstance(backends, Mapping):
            backends = {backends.name: backends}
        for backend in backends.values():
            is_valid, msg = validate_backend(backend)
            if not is_valid:
                raise ValueError(msg)

        self.host = host
        self.port = port
        self.inbox_size = inbox_size
        self.router = Router(backends.keys())
        self.interpreter = Interpreter(
            {ns: b.supported_gates for ns, b in backends.items()},
            max_qubits=max_qubits,
        )
        self.sessions = SessionManager(
            backends,
            session_timeout=session_timeout,
            sweep_interval=sweep_interval,
            tombstone_ttl=tombstone_ttl,
            max_sessions=max_sessions,
            offload=offload,
            clock=clock,
        )
        self.dispatcher = Dispatcher(
            self.handle, max_pending=max_pending, drop_policy=drop_policy
        )
        self.endpoint: Optional[UdpEndpoint] = None
        self._receiver: Optional[asyncio.Task] = None
        self.stats = {
            "protocol_errors": 0,
            "unknown_commands": 0,
            "error_replies": 0,
            "send_errors": 0,
        }

    @classmethod
    def from_config(
        cls, config: ServerConfig, backend: Optional[BackendProtocol] = None
    ) -> OscServer:
        if backend is None:
            backend = get_backend(
                config.backend, seed=config.seed, error_rate=config.error_rate
            )
        return cls(
            backend,
            host=config.host,
            port=config.port,
            max_qubits=config.max_qubits,
            max_sessions=config.max_sessions,
            session_timeout=config.session_timeout,
            sweep_interval=config.sweep_interval,
            tombstone_ttl=config.tombstone_ttl,
            max_pending=config.max_pending,
            inbox_size=config.inbox_size,
            drop_policy=config.drop_policy,
            offload=config.offload_backend,
        )

    @property
    def local_address(self) -> ClientId:
        if self.endpoint is None:
            raise RuntimeError("Server is not started.")
        return self.endpoint.local_address

    def get_stats(self) -> dict:
        return {
            **self.stats,
            "inbox_dropped": self.endpoint.dropped if self.endpoint else 0,
            "dispatch": dict(self.dispatcher.stats),
            "sessions": self.sessions.get_stats(),
        }

    # ------------------------------------------------------------------------
    # lifecycle

    async def start(self) -> None:
        self.endpoint = await UdpEndpoint.bind(self.host, self.port, self.inbox_size)
        host, port = self.endpoint.local_address
        logger.info(
            "Serving {} on udp://{}:{}", ", ".join(self.sessions.backends), host, port
        )
        await self.sessions.start_sweeper()
        self._receiver = asyncio.create_task(self.receiver_loop(), name="receiver")

    async def stop(self) -> None:
        if self._receiver is not None:
            self._receiver.cancel()
            try:
                await self._receiver
            except asyncio.CancelledError:
                pass
            self._receiver = None
        await self.dispatcher.close()
        await self.sessions.stop_sweeper()
        await self.sessions.close_all()
        if self.endpoint is not None:
            self.endpoint.close()
            self.endpoint = None
        logger.info("Server stopped.")

    async def serve_forever(self) -> None:
        if self._receiver is None:
            await self.start()
        try:
            await self._receiver
        finally:
            await self.stop()

    async def __aenter__(self) -> OscServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------------
    # receive side

    async def receiver_loop(self) -> None:
        while True:
            data, client = await self.endpoint.recv()
            try:
                self.handle_datagram(data, client)
            except Exception:
                logger.exception("Uncaught error in receiver loop.")

    def handle_datagram(self, data: bytes, client: ClientId) -> None:
        try:
            message = codec.decode(data)
        except ProtocolError as e:
            self.stats["protocol_errors"] += 1
            logger.warning(
                "Dropping undecodable datagram from {} ({} bytes): {}",
                format_client(client),
                len(data),
                e.message,
            )
            return
        logger.debug("*REQUEST* (server<-{}): {}", format_client(client), message)

        try:
            route = self.router.route(message.address)
        except UnknownCommand as e:
            self.stats["unknown_commands"] += 1
            logger.error("Unknown request: {}", message.address)
            self.send(error_reply(message.address, e, client))
            return
        self.dispatcher.submit(client, route, message)

    async def handle(self, unit: WorkUnit) -> None:
        """Interpret and execute one unit, then send exactly one reply."""
        command: Optional[Command] = None
        try:
            command = self.interpreter.interpret(unit.route, unit.message)
            result = await self.sessions.execute(unit.client, command)
            reply = success_reply(command, self._payload(command, result), unit.client)
        except QoscError as e:
            self._log_rejection(unit, e)
            reply = error_reply(
                unit.message.address,
                e,
                unit.client,
                tag=command.tag if command is not None else None,
            )
        except Exception:
            logger.exception("Uncaught error handling {}.", unit.message)
            reply = error_reply(
                unit.message.address,
                BackendFailure("Internal", format_error_response()),
                unit.client,
                tag=command.tag if command is not None else None,
            )
        self.send(reply)

    # ------------------------------------------------------------------------
    # send side

    def send(self, reply: Reply) -> None:
        destination = format_client(reply.destination)
        if not reply.ok:
            self.stats["error_replies"] += 1
        label = "*REPLY*" if reply.ok else "*ERROR*"
        logger.debug("{} (server->{}): {}", label, destination, reply.to_message())
        try:
            data = codec.encode(reply.address, reply.args)
            self.endpoint.sendto(data, reply.destination)
        except (OSError, BuildError):
            self.stats["send_errors"] += 1
            logger.exception("Error sending reply to {}.", destination)

    @staticmethod
    def _payload(command: Command, result: Any) -> list:
        match command.kind:
            case CMD.MEASURE:
                return measure_payload(result)
            case CMD.QUERY:
                return query_payload(result)
            case _:
                return ok_payload()

    @staticmethod
    def _log_rejection(unit: WorkUnit, error: QoscError) -> None:
        if isinstance(error, CommandError):
            logger.info(
                "Rejected {} from {}: {} {}",
                unit.message.address,
                format_client(unit.client),
                error.code,
                error.message,
            )
        elif isinstance(error, BackendFailure):
            logger.error(
                "Backend failure on {} from {}: {} {}",
                unit.message.address,
                format_client(unit.client),
                error.backend_code,
                error.message,
            )
        else:
            logger.info(
                "Session error on {} from {}: {}",
                unit.message.address,
                format_client(unit.client),
                error.code,
            )


# ============================================================================


async def start_server(
    config: ServerConfig,
    log_to_file: bool = True,
    log_to_stdout: bool = False,
    log_path: str = "",
    clear_prev_log: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
):
    """Run a server for `config` until cancelled."""
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"qosc-server_{timestamp}")

    qosc.util.start_server_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )
    logger.info("Starting server [{}] with backend {}", config.name, config.backend)

    try:
        server = OscServer.from_config(config)
    except ValueError:
        logger.exception("Could not compose server for [{}].", config.name)
        raise

    await server.start()
    host, port = server.local_address
    pid_file = register_server(host, port, config.backend, config.name)
    try:
        await server.serve_forever()
    finally:
        unregister_server(pid_file)
