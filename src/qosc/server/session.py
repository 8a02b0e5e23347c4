# -*- coding: utf-8 -*-
"""
Session management: one quantum register per client identity.

Lifecycle
---------
```
Uninitialized --init--> Active --gate/measure/query--> Active
Active --reset--> Uninitialized (register discarded)
Active --idle > session_timeout--> Expired (terminal, register released)
```

Sessions live in a registry keyed by client identity (host, port). Each session
has its own guard (an asyncio.Lock); a command runs against the register only
while holding that guard, and there is no global lock, so commands for
different clients never wait on each other. Ordering between commands of the
same client is provided by the dispatcher lanes (see `qosc.server.dispatch`).

Idle sessions are reclaimed lazily, when their client next sends a command, and
periodically by the sweeper task. A reclaimed identity is remembered for
`tombstone_ttl` seconds so that its next command is answered with
SessionExpired rather than NoActiveSession. Nothing revives an expired session:
the client must send a fresh init.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from loguru import logger

from qosc.backend import RegisterHandle
from qosc.types import (
    CMD,
    BackendFailure,
    BackendProtocol,
    ClientId,
    Command,
    NoActiveSession,
    SessionExpired,
    SessionInfo,
)
from qosc.util import (
    DEFAULT_MAX_SESSIONS,
    DEFAULT_SESSION_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    DEFAULT_TOMBSTONE_TTL,
)

from .interpreter import check_range


def format_client(client: ClientId) -> str:
    return f"{client[0]}:{client[1]}"


@dataclass(eq=False)
class Session:
    client: ClientId
    namespace: str
    handle: RegisterHandle
    qubit_count: int
    created_at: float  # unix time
    last_active: float  # manager clock
    guard: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    degraded: bool = False
    commands_executed: int = 0
    closed: bool = False


class SessionManager:
    """Registry of client sessions and the only caller of the backends.

    Parameters
    ----------
    backends : Mapping[str, BackendProtocol]
        Backend per namespace.
    session_timeout : float, optional
        Seconds of inactivity before a session is reclaimed. None disables.
    sweep_interval : float
        Seconds between sweeper passes.
    tombstone_ttl : float
        Seconds an expired identity keeps answering SessionExpired.
    max_sessions : int
        Bound on concurrent sessions; an init from a new client beyond it fails
        with BackendFailure("SessionLimit").
    offload : bool
        Run backend calls in a worker thread so they never block the event loop.
    clock : Callable[[], float]
        Monotonic clock, replaceable for tests.
    """

    def __init__(
        self,
        backends: Mapping[str, BackendProtocol],
        session_timeout: Optional[float] = DEFAULT_SESSION_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        tombstone_ttl: float = DEFAULT_TOMBSTONE_TTL,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        offload: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backends = dict(backends)
        self.session_timeout = session_timeout
        self.sweep_interval = sweep_interval
        self.tombstone_ttl = tombstone_ttl
        self.max_sessions = max_sessions
        self.offload = offload
        self._clock = clock
        self._sessions: dict[ClientId, Session] = {}
        self._tombstones: dict[ClientId, float] = {}
        self._opening = 0  # inits waiting on allocate
        self._sweeper: Optional[asyncio.Task] = None
        self.stats = {
            "sessions_created": 0,
            "sessions_closed": 0,
            "sessions_expired": 0,
            "sessions_refused": 0,
            "backend_failures": 0,
            "commands_executed": 0,
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, client: ClientId) -> bool:
        return client in self._sessions

    def get_stats(self) -> dict:
        return {**self.stats, "active_sessions": len(self._sessions)}

    # ------------------------------------------------------------------------

    async def execute(self, client: ClientId, command: Command) -> Any:
        """Run one command for `client`.

        Returns
        -------
        None for init, gate and reset; the measured bits for measure; a
        SessionInfo for query.

        Raises
        ------
        NoActiveSession, SessionExpired, OutOfRange, BackendFailure
        """
        match command.kind:
            case CMD.INIT:
                await self.open(client, command)
                return None
            case CMD.RESET:
                await self.close(client, command.namespace)
                return None

        session = await self.lookup(client, command.namespace)
        async with session.guard:
            if session.closed:  # reclaimed while we waited for the guard
                self._raise_missing(client, command.namespace)
            check_range(command, session.qubit_count)
            if command.kind == CMD.QUERY:
                result = self.info(session)
            else:
                session.last_active = self._clock()
                try:
                    result = await self._run(session, command)
                except BackendFailure as e:
                    self._on_backend_failure(session, e)
                    raise
            session.last_active = self._clock()
            session.commands_executed += 1
            self.stats["commands_executed"] += 1
        return result

    async def open(self, client: ClientId, command: Command) -> Session:
        """Create a fresh session for `client`, evicting any previous one."""
        previous = self._sessions.pop(client, None)
        self._tombstones.pop(client, None)
        if previous is not None:
            async with previous.guard:
                logger.info(
                    "Replacing session of {} ({} qubits).",
                    format_client(client),
                    previous.qubit_count,
                )
                await self._release(previous)
                self.stats["sessions_closed"] += 1

        if len(self._sessions) + self._opening >= self.max_sessions:
            self.stats["sessions_refused"] += 1
            logger.warning(
                "Session limit ({}) reached, refusing init from {}.",
                self.max_sessions,
                format_client(client),
            )
            raise BackendFailure(
                "SessionLimit",
                f"server is at its limit of {self.max_sessions} sessions",
            )

        backend = self.backends[command.namespace]
        self._opening += 1
        try:
            handle = await self._call(backend.allocate, command.qubit_count)
        finally:
            self._opening -= 1
        session = Session(
            client=client,
            namespace=command.namespace,
            handle=handle,
            qubit_count=command.qubit_count,
            created_at=time.time(),
            last_active=self._clock(),
        )
        self._sessions[client] = session
        self.stats["sessions_created"] += 1
        self.stats["commands_executed"] += 1
        logger.info(
            "Session opened: client={}, backend={}, qubits={}",
            format_client(client),
            command.namespace,
            command.qubit_count,
        )
        return session

    async def lookup(
        self, client: ClientId, namespace: Optional[str] = None
    ) -> Session:
        """Return the live session of `client`, reclaiming it if it has expired."""
        session = self._sessions.get(client)
        if session is None or namespace not in (None, session.namespace):
            self._raise_missing(client, namespace)
        if self._is_expired(session):
            async with session.guard:
                if self._sessions.get(client) is session:
                    del self._sessions[client]
                    await self._expire(session)
            raise SessionExpired(f"session of {format_client(client)} expired")
        return session

    async def close(self, client: ClientId, namespace: Optional[str] = None) -> None:
        """Reset: discard the register of `client` and forget the session."""
        session = await self.lookup(client, namespace)
        async with session.guard:
            if session.closed:
                self._raise_missing(client, namespace)
            if self._sessions.get(client) is session:
                del self._sessions[client]
            await self._release(session)
            self.stats["sessions_closed"] += 1
            self.stats["commands_executed"] += 1
        logger.info("Session closed by reset: client={}", format_client(client))

    async def close_all(self) -> None:
        for session in list(self._sessions.values()):
            async with session.guard:
                self._sessions.pop(session.client, None)
                await self._release(session)
                self.stats["sessions_closed"] += 1

    def info(self, session: Session) -> SessionInfo:
        return SessionInfo(
            client=format_client(session.client),
            backend=session.namespace,
            qubit_count=session.qubit_count,
            created_at=session.created_at,
            idle_seconds=max(0.0, self._clock() - session.last_active),
            degraded=session.degraded,
            commands_executed=session.commands_executed,
            metadata={"handle": str(session.handle.handle_id)},
        )

    # ------------------------------------------------------------------------
    # idle reclamation

    async def sweep(self) -> int:
        """Reclaim every idle session whose guard is free. Returns the count."""
        reclaimed = 0
        candidates = [
            s
            for s in self._sessions.values()
            if not s.guard.locked() and self._is_expired(s)
        ]
        for session in candidates:
            async with session.guard:
                # re-check, a command may have touched it while we waited
                if session.closed or not self._is_expired(session):
                    continue
                if self._sessions.get(session.client) is session:
                    del self._sessions[session.client]
                await self._expire(session)
                reclaimed += 1

        now = self._clock()
        for client, expired_at in list(self._tombstones.items()):
            if now - expired_at > self.tombstone_ttl:
                del self._tombstones[client]
        if reclaimed:
            logger.info("Sweep reclaimed {} idle session(s).", reclaimed)
        return reclaimed

    async def start_sweeper(self) -> None:
        if self._sweeper is not None or self.session_timeout is None:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Session sweeper started (timeout={}s, interval={}s)",
            self.session_timeout,
            self.sweep_interval,
        )

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Session sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Error during session sweep.")

    # ------------------------------------------------------------------------

    def _is_expired(self, session: Session) -> bool:
        if self.session_timeout is None:
            return False
        return self._clock() - session.last_active > self.session_timeout

    def _raise_missing(self, client: ClientId, namespace: Optional[str]):
        expired_at = self._tombstones.get(client)
        if expired_at is not None and self._clock() - expired_at <= self.tombstone_ttl:
            raise SessionExpired(f"session of {format_client(client)} expired")
        what = f"{namespace} session" if namespace else "session"
        raise NoActiveSession(f"no active {what} for {format_client(client)}")

    async def _expire(self, session: Session) -> None:
        self._tombstones[session.client] = self._clock()
        self.stats["sessions_expired"] += 1
        logger.info(
            "Session expired: client={}, idle={:.1f}s",
            format_client(session.client),
            self._clock() - session.last_active,
        )
        await self._release(session)

    async def _release(self, session: Session) -> None:
        session.closed = True
        backend = self.backends[session.namespace]
        try:
            await self._call(backend.reset, session.handle)
        except BackendFailure as e:
            # the register is dropped either way
            logger.warning(
                "Backend reset failed while releasing {}: {}",
                format_client(session.client),
                e.message,
            )

    def _on_backend_failure(self, session: Session, error: BackendFailure) -> None:
        self.stats["backend_failures"] += 1
        if error.fatal:
            logger.error(
                "Fatal backend failure, dropping session of {}: {}",
                format_client(session.client),
                error.message,
            )
            session.closed = True
            if self._sessions.get(session.client) is session:
                del self._sessions[session.client]
        else:
            logger.error(
                "Backend failure, session of {} degraded: {} {}",
                format_client(session.client),
                error.backend_code,
                error.message,
            )
            session.degraded = True

    async def _run(self, session: Session, command: Command) -> Any:
        backend = self.backends[session.namespace]
        match command.kind:
            case CMD.GATE:
                await self._call(
                    backend.apply_gate,
                    session.handle,
                    command.gate,
                    command.qubits,
                    command.params,
                )
                return None
            case CMD.MEASURE:
                qubits = command.qubits or tuple(range(session.qubit_count))
                return await self._call(backend.measure, session.handle, qubits)
            case _:
                raise ValueError(f"Invalid command kind: {command.kind}")

    async def _call(self, func, *args):
        """Call a backend operation, converting any failure to BackendFailure."""
        try:
            if self.offload:
                return await _in_thread(func, *args)
            return func(*args)
        except BackendFailure:
            raise
        except Exception as e:
            logger.exception("Backend call {} failed.", getattr(func, "__name__", func))
            raise BackendFailure(type(e).__name__, str(e)) from e


async def _in_thread(func, *args):
    """Run `func` in a worker thread.

    Cancelling the caller cannot stop the thread, so on cancellation this waits
    for the call to return before re-raising. A caller holding a session guard
    therefore keeps it until the register is no longer being touched.
    """
    work = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(work)
    except asyncio.CancelledError:
        await asyncio.wait([work])
        if not work.cancelled() and work.exception() is not None:
            logger.warning(
                "Backend call {} failed after cancellation: {}",
                getattr(func, "__name__", func),
                work.exception(),
            )
        raise
